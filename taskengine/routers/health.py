from fastapi import APIRouter
import redis
from taskengine.config import REDIS_URL

router = APIRouter()

@router.get("/health")
def health():
    return {"ok": True}

@router.get("/health/broker")
def health_broker():
    try:
        conn = redis.from_url(REDIS_URL, socket_connect_timeout=2, socket_timeout=2)
        return {"ok": bool(conn.ping())}
    except redis.exceptions.RedisError as e:
        return {"ok": False, "error": str(e)}
