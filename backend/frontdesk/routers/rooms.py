"""
房间管理路由
楼层与房态日历的固定路径须声明在 /{room_id} 之前
"""
from typing import List
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.models.ontology import Employee
from frontdesk.models.schemas import (
    FloorCreate, FloorResponse, MaintenanceUpdate, RoomCreate, RoomResponse, RoomUpdate
)
from frontdesk.security.auth import get_current_user, require_admin, require_counter_or_admin
from frontdesk.services.availability_service import AvailabilityService
from frontdesk.services.room_service import RoomService

router = APIRouter(prefix="/rooms", tags=["房间管理"])


# ============== 房态日历 ==============

@router.get("/availability")
def get_availability(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """房间 × 日期 房态网格"""
    return AvailabilityService(db).get_availability(start_date, end_date)


# ============== 楼层 ==============

@router.get("/floors", response_model=List[FloorResponse])
def list_floors(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取所有楼层"""
    return RoomService(db).get_floors()


@router.post("/floors", response_model=FloorResponse)
def create_floor(
    data: FloorCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """创建楼层"""
    return RoomService(db).create_floor(data)


@router.delete("/floors/{floor_id}")
def delete_floor(
    floor_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """删除楼层"""
    RoomService(db).delete_floor(floor_id)
    return {"message": "楼层已删除"}


# ============== 房间 ==============

@router.get("", response_model=List[RoomResponse])
def list_rooms(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取所有房间"""
    service = RoomService(db)
    return [service.get_room_detail(room) for room in service.get_rooms()]


@router.post("", response_model=RoomResponse)
def create_room(
    data: RoomCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """创建房间"""
    service = RoomService(db)
    return service.get_room_detail(service.create_room(data))


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取房间详情"""
    service = RoomService(db)
    return service.get_room_detail(service.get_room(room_id))


@router.put("/{room_id}", response_model=RoomResponse)
def update_room(
    room_id: int,
    data: RoomUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """更新房间"""
    service = RoomService(db)
    return service.get_room_detail(service.update_room(room_id, data))


@router.delete("/{room_id}")
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """删除房间"""
    RoomService(db).delete_room(room_id)
    return {"message": "房间已删除"}


# ============== 房态 ==============

@router.put("/{room_id}/clean", response_model=RoomResponse)
def mark_clean(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """清洁完成"""
    service = RoomService(db)
    return service.get_room_detail(service.mark_clean(room_id, operator_id=current_user.id))


@router.put("/{room_id}/maintenance", response_model=RoomResponse)
def set_maintenance(
    room_id: int,
    data: MaintenanceUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """维修标记开关"""
    service = RoomService(db)
    return service.get_room_detail(service.set_maintenance(room_id, data.enabled))
