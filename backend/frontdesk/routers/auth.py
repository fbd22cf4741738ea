"""
认证路由
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.models.ontology import Employee
from frontdesk.models.schemas import EmployeeResponse, LoginRequest, LoginResponse
from frontdesk.security.auth import authenticate, get_current_user

router = APIRouter(prefix="/auth", tags=["认证"])


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """用户登录"""
    result = authenticate(db, data.username, data.password)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户名或密码错误"
        )
    return result


@router.get("/me", response_model=EmployeeResponse)
def get_current_user_info(current_user: Employee = Depends(get_current_user)):
    """获取当前用户信息"""
    return current_user
