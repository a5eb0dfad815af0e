# leadflow/services/google_auth.py

from dataclasses import dataclass
from typing import Optional

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from leadflow.config import settings

# один транспорт (requests.Session) на процесс: соединение с Google переиспользуется
_transport = google_requests.Request()


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    name: str
    picture: Optional[str] = None


def verify_google_token(token: str) -> GoogleIdentity:
    """
    Проверяет Google ID token библиотекой google-auth
    (подпись, iss, aud, exp) и дополнительно требует подтверждённый email.
    Вызов блокирующий (сеть): из async кода запускать через run_in_threadpool.

    Raises:
        ValueError: токен невалиден или email не подтверждён
    """
    if not settings.GOOGLE_CLIENT_ID:
        raise ValueError("GOOGLE_CLIENT_ID не настроен")

    idinfo = id_token.verify_oauth2_token(
        token, _transport, settings.GOOGLE_CLIENT_ID
    )

    if not idinfo.get("email_verified"):
        raise ValueError("Email not verified by Google")

    email = idinfo["email"].lower()
    return GoogleIdentity(
        email=email,
        name=idinfo.get("name") or email.split("@")[0],
        picture=idinfo.get("picture"),
    )
