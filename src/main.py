from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from src.config.settings import settings
from src.api.middlewares.logger import LoggerMiddleware
from src.api.models.base import ResponseModel
from src.api.routers import file, project, run, test_case
from src.db import init_db
import os

# 创建FastAPI应用实例
app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="浏览器自动化测试管理平台API",
    version=settings.APP_VERSION,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 在生产环境中应该设置具体的域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 添加日志中间件
app.add_middleware(LoggerMiddleware)

# 注册路由
app.include_router(project.router)
app.include_router(test_case.router)
app.include_router(file.router)
app.include_router(run.router)

# 健康检查接口
@app.get("/health")
async def health_check():
    """健康检查接口"""
    return ResponseModel(data={"status": "ok"})

# 异常处理
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """HTTP异常处理器"""
    if exc.status_code >= 500:
        logger.error(f"HTTP error occurred: {exc.detail}")
    else:
        logger.warning(f"HTTP error occurred: {exc.status_code} {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ResponseModel(
            code=exc.status_code,
            message=str(exc.detail),
            data=None
        ).model_dump()
    )

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """通用异常处理器"""
    logger.error(f"Unexpected error occurred: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content=ResponseModel(
            code=500,
            message="Internal server error",
            data=None
        ).model_dump()
    )

# 启动事件
@app.on_event("startup")
async def startup_event():
    """应用启动时的事件处理"""
    # 初始化数据库
    await init_db()
    logger.info("Database initialized")

if __name__ == "__main__":
    # 标记为主进程
    os.environ["RELOAD_PROCESS"] = "0"

    import uvicorn
    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)
