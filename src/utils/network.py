"""
网络请求工具模块
提供统一的、带重试机制的 requests 会话，供第三方接口客户端复用。
"""
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import logging

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "VoicePaper/1.0 (+python-requests)"


def get_session(
    retries: int = 3,
    backoff_factor: float = 0.5,
    allowed_methods: tuple = ("HEAD", "GET", "OPTIONS"),
    user_agent: str = DEFAULT_USER_AGENT,
) -> requests.Session:
    """
    创建一个预配置的 Requests Session

    Features:
    - 自动重试 (Retries)，仅作用于幂等方法：POST 提交任务重试会产生重复任务
    - 超时需在 request 调用时显式传递
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=list(allowed_methods),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": user_agent})

    return session
