from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from storefront.health.service import health_supabase_info, health_checkout_store_info
from storefront.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_supabase_info())

@router.get("/checkout")
def health_checkout(request: Request):
    """Pont de session Redis + état du rate limiting."""
    return {"session_store": health_checkout_store_info(), "rate_limit": rate_limit_health_info(request)}
