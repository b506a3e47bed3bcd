# backend/gardiens/core/security.py
# Validation JWT (émis par le service d'authentification), dépendances FastAPI `get_current_user` / `require_admin`.

import datetime as dt
from typing import Annotated

from bson import ObjectId
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorDatabase

from gardiens.core.errors import Forbidden
from gardiens.core.settings import get_settings
from gardiens.core.utils import utcnow
from gardiens.db.mongodb import get_db
from gardiens.models.user import CurrentUser as CurrentUserModel

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", scopes={})


def create_access_token(data: dict, expires_delta: dt.timedelta | None = None) -> str:
    """Crée un access token JWT.

    Description:
        Utilisé par les scripts d'administration et les tests ; les joueurs
        reçoivent leurs jetons du service d'authentification.

    Args:
        data (dict): Claims à inclure (ex. `{"sub": "<user_id>"}`).
        expires_delta (datetime.timedelta | None): Durée de validité (15 min par défaut).

    Returns:
        str: Jeton JWT signé.
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or dt.timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_user_id(token: str) -> ObjectId | None:
    """Retourne l'id utilisateur (`sub`) d'un jeton valide, sinon None."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    sub = payload.get("sub")
    if not isinstance(sub, str) or not ObjectId.is_valid(sub):
        return None
    return ObjectId(sub)


async def load_user(db: AsyncIOMotorDatabase, user_id: ObjectId) -> CurrentUserModel | None:
    """Charge le profil et les rôles d'un utilisateur."""
    profile = await db.profiles.find_one({"_id": user_id})
    if profile is None:
        return None
    roles = [doc["role"] async for doc in db.user_roles.find({"user_id": user_id})]
    return CurrentUserModel(
        id=user_id,
        email=profile.get("email", ""),
        team_name=profile.get("team_name"),
        roles=roles,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> CurrentUserModel:
    """Dépendance FastAPI: charge l'utilisateur courant depuis le JWT.

    Description:
        - Décode le JWT reçu via le schéma OAuth2 Bearer
        - Extrait `sub` (id utilisateur) puis charge profil et rôles
        - Lève 401 si le token est invalide ou si le profil n'existe pas

    Raises:
        HTTPException: 401 si jeton invalide ou profil introuvable.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = decode_user_id(token)
    if user_id is None:
        raise credentials_exception

    user = await load_user(db, user_id)
    if user is None:
        raise credentials_exception
    return user


def require_admin(current_user: Annotated[CurrentUserModel, Depends(get_current_user)]) -> CurrentUserModel:
    if not current_user.is_admin:
        raise Forbidden()
    return current_user


# Type aliases pour faciliter l'usage
CurrentUser = Annotated[CurrentUserModel, Depends(get_current_user)]
AdminUser = Annotated[CurrentUserModel, Depends(require_admin)]
