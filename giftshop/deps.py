import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .services import Services


http_basic = HTTPBasic()


def get_services(request: Request) -> Services:
    return request.app.state.services


def admin_basic_auth(
    credentials: HTTPBasicCredentials = Depends(http_basic),
    services: Services = Depends(get_services),
):
    settings = services.settings
    valid_user = secrets.compare_digest(credentials.username.encode(), settings.ADMIN_USERNAME.encode())
    valid_pass = secrets.compare_digest(credentials.password.encode(), settings.ADMIN_PASSWORD.encode())
    if not (valid_user and valid_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
