class RunError(Exception):
    """运行编排相关错误的基类"""

class PersistenceError(RunError):
    """保存用例定义失败，运行不会开始"""

class ExecutionError(RunError):
    """运行请求失败"""

class RunInProgressError(RunError):
    """已有运行在进行中"""

class ApiError(Exception):
    """服务端返回了错误响应"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
