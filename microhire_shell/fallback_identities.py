"""离线测试身份数据集（只读）。

身份服务不可达时，登录按 email + password 精确匹配这里的记录。集合固定、不可扩展，
因此离线模式下没有注册能力。返回的记录副本不含 password。
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple


_FALLBACK_USERS: Tuple[Dict[str, Any], ...] = (
    {
        "id": "student-1",
        "email": "john.student@test.com",
        "password": "password123",
        "fullName": "John Doe",
        "role": "student",
        "location": "kathmandu",
        "skills": ["JavaScript", "React", "Python", "Node.js", "MongoDB"],
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "student-2",
        "email": "priya.sharma@test.com",
        "password": "password123",
        "fullName": "Priya Sharma",
        "role": "student",
        "location": "pokhara",
        "skills": ["Digital Marketing", "Content Writing", "Social Media"],
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "student-3",
        "email": "ram.thapa@test.com",
        "password": "password123",
        "fullName": "Ram Thapa",
        "role": "student",
        "location": "chitwan",
        "skills": ["AutoCAD", "SolidWorks", "Manufacturing"],
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "business-1",
        "email": "hr@technepal.com",
        "password": "password123",
        "fullName": "Tech Nepal HR",
        "role": "business",
        "companyName": "Tech Nepal Pvt. Ltd.",
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "business-2",
        "email": "careers@himalayabank.com",
        "password": "password123",
        "fullName": "Himalaya Bank Careers",
        "role": "business",
        "companyName": "Himalaya Bank Ltd.",
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "business-3",
        "email": "internships@creativenepal.com",
        "password": "password123",
        "fullName": "Creative Nepal",
        "role": "business",
        "companyName": "Creative Nepal Studio",
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "admin-1",
        "email": "admin@microhire.com",
        "password": "admin123",
        "fullName": "MicroHire Admin",
        "role": "admin",
        "status": "active",
        "emailVerified": True,
    },
    {
        "id": "admin-2",
        "email": "support@microhire.com",
        "password": "admin123",
        "fullName": "MicroHire Support",
        "role": "admin",
        "status": "active",
        "emailVerified": True,
    },
)


def _public(record: Dict[str, Any]) -> Dict[str, Any]:
    data = copy.deepcopy(record)
    data.pop("password", None)
    return data


def match_credentials(email: str, password: str) -> Optional[Dict[str, Any]]:
    for record in _FALLBACK_USERS:
        if record["email"] == email and record["password"] == password:
            return _public(record)
    return None


def list_fallback_users(role: Optional[str] = None) -> List[Dict[str, Any]]:
    """供测试/演示列出可用身份（不含密码）。"""

    return [_public(r) for r in _FALLBACK_USERS if role is None or r["role"] == role]


__all__ = ["match_credentials", "list_fallback_users"]
