# 后端健康检查端点
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import inspect, text
from app.core.database import get_db
from app.models import ForumPost
import time

router = APIRouter()


@router.get("")
async def health_check(db: Session = Depends(get_db)):
    """
    健康检查端点 - 用于负载均衡器/监控系统
    返回服务状态、数据库连接与论坛表状态
    """
    start = time.time()

    db_status = "healthy"
    db_latency_ms = 0
    forum_table = False
    try:
        db_start = time.time()
        db.execute(text("SELECT 1"))
        db_latency_ms = round((time.time() - db_start) * 1000, 2)
        forum_table = inspect(db.get_bind()).has_table(ForumPost.__tablename__)
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    total_latency_ms = round((time.time() - start) * 1000, 2)

    if db_status != "healthy":
        status = "degraded"
    elif not forum_table:
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "timestamp": time.time(),
        "checks": {
            "database": {
                "status": db_status,
                "latency_ms": db_latency_ms
            },
            "forumTable": forum_table,
        },
        "latency_ms": total_latency_ms
    }


@router.get("/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """
    就绪检查 - Kubernetes readiness probe
    """
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        raise HTTPException(status_code=503, detail="Service not ready")
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """
    存活检查 - Kubernetes liveness probe
    """
    return {"alive": True}
