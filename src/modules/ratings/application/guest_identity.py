"""Identity attached to ratings from anonymous raters."""

import re
import secrets
import string
import time

from loguru import logger

from src.core.domain.exceptions import ValidationError
from src.core.domain.ports.kv import KVClient

GUEST_ID_KEY = "guestId"
GUEST_ID_PATTERN = r"^guest_\d{13}_[a-z0-9]{9}$"
_ALPHABET = string.ascii_lowercase + string.digits
_GUEST_ID_RE = re.compile(GUEST_ID_PATTERN)


def generate_guest_id() -> str:
    """guest_<epoch ms>_<9 random chars>."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"guest_{int(time.time() * 1000)}_{suffix}"


def is_valid_guest_id(value: str) -> bool:
    return bool(_GUEST_ID_RE.fullmatch(value))


class GuestIdentityProvider:
    """Resolve the user id attached to a rating.

    已登录用户使用 ``user_{id}``；匿名用户使用调用方携带的访客 ID，
    同一访客重复评分因此会覆盖而不是重复计数。

    调用方没有访客 ID 时：
    - 传入 store（单个安装内的本地客户端）：读取/生成并持久化本安装的访客 ID
    - 不传 store（服务端，每个请求一个实例）：生成新的访客 ID，由响应返回给调用方保存
    """

    def __init__(self, store: KVClient | None = None):
        self.store = store
        self._guest_id: str | None = None

    async def get_guest_id(self) -> str:
        if self._guest_id is not None:
            return self._guest_id

        guest_id = await self.store.get(GUEST_ID_KEY) if self.store else None
        if not guest_id:
            guest_id = generate_guest_id()
            if self.store is not None:
                try:
                    await self.store.set(GUEST_ID_KEY, guest_id)
                except Exception as e:
                    # 仍返回新 ID；本次会话内保持稳定
                    logger.warning(f"Could not persist guest id: {e}")
        self._guest_id = guest_id
        return guest_id

    async def resolve_user_id(
        self,
        authenticated_user_id: str | int | None = None,
        guest_id: str | None = None,
    ) -> str:
        """
        Raises:
            ValidationError: guest_id 格式不是 guest_<13 位毫秒>_<9 位小写字母数字>
        """
        if authenticated_user_id not in (None, ""):
            return f"user_{authenticated_user_id}"
        if guest_id:
            if not is_valid_guest_id(guest_id):
                raise ValidationError(f"Invalid guest id: {guest_id!r}")
            return guest_id
        return await self.get_guest_id()
