# ============================================================================
#  File: telemetry.py
#  Purpose: Timing, memory and usage telemetry for orchestrated actions
# ============================================================================
# SECTION 1: Global Variables
# ============================================================================

import csv
import functools
import json
import os
import threading
import time
from datetime import datetime

import psutil

TELEMETRY_FILE = 'telemetry.csv'
USAGE_FILE = 'usage.json'
FIELDNAMES = ['datetime', 'component', 'operation', 'outcome', 'elapsed_sec', 'mem_mb', 'cpu_pct']

_file_lock = threading.Lock()

# ============================================================================
# SECTION 2: Timing Decorator
# ============================================================================
# Function 2.1: _write_row
# ============================================================================
def _write_row(directory, row):
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, TELEMETRY_FILE)
    with _file_lock:
        with open(path, 'a', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
            if f.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

# ============================================================================
# Function 2.2: record_telemetry
# ============================================================================
def record_telemetry(component, operation, directory='logs'):
    """
    Decorator for coroutine functions that appends one CSV row per call with
    elapsed time, RSS delta, CPU delta and outcome ('ok', 'failed' for a
    falsy result, 'error' when it raises). Exceptions propagate unchanged.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.time()
            process = psutil.Process(os.getpid())
            mem_before = process.memory_info().rss
            cpu_before = process.cpu_percent(interval=None)
            outcome = 'error'
            try:
                result = await func(*args, **kwargs)
                outcome = 'ok' if result else 'failed'
                return result
            finally:
                elapsed = time.time() - start
                mem_after = process.memory_info().rss
                cpu_after = process.cpu_percent(interval=None)
                _write_row(directory, {
                    'datetime': datetime.now().isoformat(),
                    'component': component,
                    'operation': operation,
                    'outcome': outcome,
                    'elapsed_sec': round(elapsed, 3),
                    'mem_mb': round((mem_after - mem_before) / 1048576, 3),
                    'cpu_pct': cpu_after - cpu_before
                })
                increment_usage(component, operation, directory)
        return wrapper
    return decorator

# ============================================================================
# SECTION 3: Usage Counter
# ============================================================================
# Function 3.1: increment_usage
# ============================================================================
def increment_usage(component, operation, directory='logs'):
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, USAGE_FILE)
    with _file_lock:
        if os.path.exists(path):
            with open(path, 'r') as f:
                usage = json.load(f)
        else:
            usage = {}
        key = f'{component}:{operation}'
        usage[key] = usage.get(key, 0) + 1
        with open(path, 'w') as f:
            json.dump(usage, f, indent=2)
    return usage[key]
#
#
## End of Script
