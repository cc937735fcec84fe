from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cafm.database import get_db
from cafm.services.health import health_report, check_database, UP

router = APIRouter()


@router.get("")
async def health(db: Session = Depends(get_db)):
    return await health_report(db)


@router.get("/live")
async def liveness():
    return {"status": UP}


@router.get("/ready")
async def readiness(db: Session = Depends(get_db)):
    database = check_database(db)
    if database["status"] != UP:
        return JSONResponse(status_code=503, content={"status": database["status"], "database": database})
    return {"status": UP, "database": database}
