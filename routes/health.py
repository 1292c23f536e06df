"""
健康检查路由
"""
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/health")
async def health_check():
    """健康检查端点"""
    return PlainTextResponse("OK")
