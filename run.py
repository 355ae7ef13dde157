import uvicorn
from src.config.settings import settings

if __name__ == "__main__":
    # 调试模式下启用热重载，需要以模块路径启动
    uvicorn.run(
        "src.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.DEBUG,
        log_level=settings.log.LOG_LEVEL.lower(),
    )
