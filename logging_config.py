"""
Gunicorn 日志配置
使用 RotatingFileHandler 实现日志自动轮转
"""
import os


def ensure_log_dir(base_dir: str = None) -> str:
    """确保日志目录存在"""
    log_dir = os.path.join(base_dir or os.getcwd(), "logs")
    os.makedirs(log_dir, exist_ok=True)
    return log_dir


LOG_DIR = ensure_log_dir()

# 日志轮转配置
LOG_MAX_BYTES = 8 * 1024 * 1024  # 8MB
LOG_BACKUP_COUNT = 10  # 最多保留10个备份文件

# 优先使用系统日志目录，否则使用程序目录下的 logs/
if os.path.exists("/var/log/m3u8proxy") and os.access("/var/log/m3u8proxy", os.W_OK):
    ACCESS_LOG_PATH = "/var/log/m3u8proxy/access_fastapi.log"
    ERROR_LOG_PATH = "/var/log/m3u8proxy/error_fastapi.log"
else:
    ACCESS_LOG_PATH = os.path.join(LOG_DIR, "access_fastapi.log")
    ERROR_LOG_PATH = os.path.join(LOG_DIR, "error_fastapi.log")


def build_logconfig_dict(access_log_path: str, error_log_path: str) -> dict:
    """
    构建 Gunicorn logconfig_dict

    - gunicorn.error / gunicorn.access 分别写入独立的轮转文件
    - 应用日志（services.*、routes.* 等）通过 root logger 写入错误日志文件
    """
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'generic': {
                'format': '%(asctime)s [%(process)d] [%(levelname)s] [%(name)s] %(message)s',
                'datefmt': '[%Y-%m-%d %H:%M:%S %z]',
                'class': 'logging.Formatter'
            },
            'access': {
                'format': '%(message)s',
                'class': 'logging.Formatter'
            }
        },
        'handlers': {
            'error_file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'generic',
                'filename': error_log_path,
                'maxBytes': LOG_MAX_BYTES,
                'backupCount': LOG_BACKUP_COUNT,
                'encoding': 'utf-8'
            },
            'access_file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'access',
                'filename': access_log_path,
                'maxBytes': LOG_MAX_BYTES,
                'backupCount': LOG_BACKUP_COUNT,
                'encoding': 'utf-8'
            }
        },
        'loggers': {
            'gunicorn.error': {
                'level': 'INFO',
                'handlers': ['error_file'],
                'propagate': False,
                'qualname': 'gunicorn.error'
            },
            'gunicorn.access': {
                'level': 'INFO',
                'handlers': ['access_file'],
                'propagate': False,
                'qualname': 'gunicorn.access'
            }
        },
        'root': {
            'level': 'INFO',
            'handlers': ['error_file']
        }
    }


# Gunicorn 日志配置字典
logconfig_dict = build_logconfig_dict(ACCESS_LOG_PATH, ERROR_LOG_PATH)
