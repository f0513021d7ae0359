"""Wall clock used outside of tests"""

import time


class SystemClock:
    def sleep(self, seconds: float):
        time.sleep(seconds)

    def now(self) -> float:
        return time.monotonic()
