"""协作式取消令牌。

UI 线程调用 cancel()，工作线程在每一次网络调用之前调用
raise_if_cancelled()。已经发出的 HTTP 请求不会被中断。
"""

import threading

from .exceptions import TurnCancelled


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "") -> None:
        """若已取消则抛出 TurnCancelled，stage 仅用于日志。"""

        if self._event.is_set():
            raise TurnCancelled(stage)
