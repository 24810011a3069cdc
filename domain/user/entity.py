"""
用户领域实体 - 网关只关心身份与联系邮箱，认证由上游完成
"""
from datetime import datetime
from typing import Optional
from dataclasses import dataclass, field
import re

from domain.common.exceptions import DomainValidationException
from domain.common.helpers import ensure_utc, new_id

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


@dataclass
class User:
    """用户实体（商户账号）"""

    email: str
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.email = self.email.strip().lower()
        if not EMAIL_PATTERN.match(self.email):
            raise DomainValidationException(f"无效的邮箱格式: {self.email}", field="email")
        self.created_at = ensure_utc(self.created_at)
