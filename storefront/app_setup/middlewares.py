"""
Middlewares transverses de l'application.
- register_basic_middlewares: session, CORS, TrustedHost et confiance en X-Forwarded-*.
- register_security_middleware: en-têtes de sécurité, CSP, et protection CSRF pour les requêtes
  mutatives authentifiées par cookie (les appels Bearer et le checkout invité n'envoient pas de cookie).
- register_force_https_middleware: force la redirection HTTPS (utile derrière proxy).
Notes:
- L'ordre d'ajout est important: le middleware HTTPS est ajouté en dernier pour s'exécuter en premier.
"""
import secrets
from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.sessions import SessionMiddleware
try:
    from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
except Exception:
    ProxyHeadersMiddleware = None
from storefront.config import SUPABASE_URL, COOKIE_SECURE, CORS_ORIGINS, ALLOWED_HOSTS, SESSION_SECRET_KEY
from storefront.utils.security import COOKIE_NAME

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
SWAGGER_CDNS = ["https://cdn.jsdelivr.net", "https://unpkg.com"]

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET_KEY, https_only=COOKIE_SECURE)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=ALLOWED_HOSTS + ["*"] if "*" in CORS_ORIGINS else ALLOWED_HOSTS,
    )
    # Fait confiance aux en-têtes X-Forwarded-* (Render, Nginx, etc.)
    if ProxyHeadersMiddleware:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

def register_security_middleware(app: FastAPI) -> None:
    """
    - CSRF: sur POST/PUT/PATCH/DELETE avec cookie de session, X-CSRF-Token doit égaler le cookie csrf_token.
    - En-têtes: X-Frame-Options, X-Content-Type-Options, Referrer-Policy, Permissions-Policy, HSTS (si secure).
    - CSP restrictive (API JSON + doc Swagger).
    """
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        method = request.method.upper()
        has_session = bool(request.cookies.get(COOKIE_NAME))
        is_state_changing = method in ("POST", "PUT", "PATCH", "DELETE")
        csrf_cookie = request.cookies.get(CSRF_COOKIE_NAME)
        new_csrf_cookie = None if csrf_cookie else secrets.token_urlsafe(32)

        if is_state_changing and has_session:
            header_token = request.headers.get(CSRF_HEADER_NAME, "")
            if not csrf_cookie or not header_token or not secrets.compare_digest(header_token, csrf_cookie):
                return JSONResponse(status_code=403, content={"detail": "CSRF verification failed"})

        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        if COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")

        csp_connect = ["'self'"]
        if SUPABASE_URL:
            csp_connect.append(SUPABASE_URL.rstrip("/"))
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "base-uri 'self'; object-src 'none'; frame-ancestors 'none'; "
            "img-src 'self' data: https://fastapi.tiangolo.com; "
            f"style-src 'self' 'unsafe-inline' {' '.join(SWAGGER_CDNS)}; "
            f"script-src 'self' 'unsafe-inline' {' '.join(SWAGGER_CDNS)}; "
            f"connect-src {' '.join(csp_connect)}"
        )

        if new_csrf_cookie:
            response.set_cookie(
                key=CSRF_COOKIE_NAME,
                value=new_csrf_cookie,
                httponly=False,
                secure=COOKIE_SECURE,
                samesite="Lax",
                max_age=60 * 60,
                path="/",
            )
        return response

def register_force_https_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def force_https(request: Request, call_next):
        if request.headers.get("x-forwarded-proto") == "http":
            url = str(request.url).replace("http://", "https://", 1)
            return RedirectResponse(url, status_code=301)
        return await call_next(request)
