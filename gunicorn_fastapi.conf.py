import multiprocessing
import os
import sys

# 导入日志配置
sys.path.insert(0, os.path.dirname(__file__))
from logging_config import logconfig_dict, LOG_DIR

# 服务器绑定 - 端口与应用配置一致（PORT 环境变量，默认 8080）
bind = f"[::]:{os.environ.get('PORT', '8080')}"  # 双栈绑定 - 同时支持IPv4和IPv6

# 工作进程数 - 从环境变量读取，否则使用动态计算
# 多进程部署时缓存写入通过 Redis SET NX 保证只有一次生效
workers = int(os.environ.get('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))

# 工作进程类型 - 使用 Uvicorn Worker
worker_class = "uvicorn.workers.UvicornWorker"

# 工作进程连接数
worker_connections = 1000

# 超时设置：需要大于上游请求总超时（30秒）
timeout = 45
keepalive = 65

# 最大请求数（防止内存泄漏）
max_requests = 10000
max_requests_jitter = 1000

# backlog 队列大小
backlog = 2048

# 信任反向代理传递的 X-Forwarded-For，访问日志显示真实客户端 IP
forwarded_allow_ips = "*"

# 日志配置 - 使用 logging_config.py 中的 RotatingFileHandler 实现日志轮转
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# 进程名称
proc_name = "m3u8-proxy-fastapi"

# 预加载应用
preload_app = True

# 工作目录
chdir = os.getcwd()

pidfile = os.path.join(LOG_DIR, "gunicorn_fastapi.pid")

# 优雅重启超时
graceful_timeout = 30

# Uvicorn 特定配置（通过环境变量传递）
raw_env = [
    "UVICORN_LOOP=uvloop",  # 使用 uvloop 事件循环
]
