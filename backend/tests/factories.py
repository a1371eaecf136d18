"""
Shared test data helpers
"""
from typing import Dict

from faker import Faker

from app.core.security import create_access_token
from app.models.user import User

fake = Faker()

PASSWORD = 'Password1!'


def make_auth_headers(user: User) -> Dict[str, str]:
    """Bearer header carrying a fresh access token for the user"""
    token = create_access_token({
        'sub': str(user.id),
        'email': user.email,
        'role': user.role.value,
    })
    return {'Authorization': f'Bearer {token}'}
