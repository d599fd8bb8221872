import sys
import time

_START_TIME = time.time()


def log_progress(enable_progress_prints: bool, message: str) -> None:
    if not enable_progress_prints:
        return
    elapsed = time.time() - _START_TIME
    print(f"[progress {elapsed:7.2f}s] {message}", file=sys.stderr, flush=True)
