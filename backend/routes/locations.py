# backend/routes/locations.py
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from models.catalog import StorageLocation
from models.product import Product
from models.users import User
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user
import schemas.catalog as catalog_schemas

router = APIRouter(prefix="/locations", tags=["Locations"])


@router.get("", response_model=catalog_schemas.LocationList)
def get_locations(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Saved storage locations merged with any free-text location already used by a product."""
    saved = {name for (name,) in db.query(StorageLocation.name)}
    used = {loc for (loc,) in db.query(Product.location).distinct().filter(Product.location != None, Product.location != "")}
    return {"locations": sorted(saved | used, key=str.casefold)}


@router.post("", response_model=catalog_schemas.LocationOut, status_code=201)
def create_location(
    payload: catalog_schemas.LocationCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Location name is required")
    if db.query(StorageLocation.id).filter(StorageLocation.name == name).first():
        raise HTTPException(status_code=400, detail="Location already exists")

    location = StorageLocation(name=name)
    db.add(location)
    db.commit()
    db.refresh(location)
    out = catalog_schemas.LocationOut.model_validate(location)

    write_log(db, user_id=current_user.id, action="LOCATION_CREATE", resource="locations",
              status="SUCCESS", ip=client_ip(request), meta={"id": out.id, "name": out.name})
    return out
