"""
论坛领域异常

引擎层只抛出这些异常，不直接依赖 HTTP；由 main.py 中注册的异常处理器
统一转换成 `{success: false, message}` 响应。
"""
from fastapi import status


class ForumError(Exception):
    """论坛异常基类"""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "请求处理失败"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ForumError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "参数校验失败"


class Locked(ForumError):
    """帖子已锁定，不允许回复"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "帖子已锁定"


class Forbidden(ForumError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "无权执行该操作"


class NotFound(ForumError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "帖子不存在"


class PersistenceFailure(ForumError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "数据存储失败"


class ConcurrentModification(PersistenceFailure):
    """版本号冲突重试次数耗尽"""
    status_code = status.HTTP_409_CONFLICT
    default_message = "帖子正在被其他请求修改，请稍后重试"
