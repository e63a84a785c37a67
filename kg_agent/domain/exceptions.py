"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在编排层或 API 层做统一捕获，并转换成模型可读的软结果。

取消（TurnCancelled）不是业务错误：它代表用户主动停止，
必须与失败区分开，因此单独继承 Exception。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 endpoint、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class NotFoundError(ApiError):
    """外部服务返回 404：查询对象不存在，属于可预期的“空结果”。"""


class RateLimitError(BusinessError):
    """外部服务限流错误，由调用方决定是否重试。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class TurnCancelled(Exception):
    """当前轮对话被用户取消。"""

    def __init__(self, stage: str = ""):
        self.stage = stage
        super().__init__(f"turn cancelled before {stage}" if stage else "turn cancelled")
