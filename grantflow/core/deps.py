from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.db.session import get_db, get_session_factory
from grantflow.core.security import decode_token
from grantflow.models.user import User
from grantflow.repositories.user_repository import UserRepository
from grantflow.services.notification_service import DatabaseNotifier, Notifier


bearer_scheme = HTTPBearer(auto_error=False)


DBSessionDep = Annotated[AsyncSession, Depends(get_db)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_notifier(session_factory: SessionFactoryDep) -> Notifier:
    return DatabaseNotifier(session_factory)


NotifierDep = Annotated[Notifier, Depends(get_notifier)]


async def get_current_user(
    db: DBSessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    user = await UserRepository(db).get_by_id(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]
