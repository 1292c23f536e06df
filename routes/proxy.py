"""
代理路由
GET /m3u8-proxy?url=<绝对URL>&referer=<可选>
"""
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from models.config import config

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(config.PROXY_ROUTE_PATH)
async def m3u8_proxy(
    request: Request,
    url: Optional[str] = Query(None, description="Absolute URL of the playlist, segment or asset"),
    referer: Optional[str] = Query(None, description="URL-encoded Referer/Origin sent upstream")
):
    """代理 HLS 播放列表、分片和静态资源"""
    proxy_service = request.app.state.m3u8_proxy_service
    return await proxy_service.handle(url, referer, config.proxy_url_prefix)
