from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
from src.api.models.base import ResponseModel
from src.api.models.project import ProjectCreate, ProjectInfo
from src.api.models.test_case import TestCaseCreate, TestCaseInfo
from src.api.services.auth import get_current_user_id
from src.api.services.project import ProjectService
from src.api.services.test_case import TestCaseService
from src.db.session import get_db

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])

def _project_info(project, test_case_count: int = 0) -> ProjectInfo:
    return ProjectInfo(
        id=project.id,
        name=project.name,
        user_id=project.user_id,
        created_at=project.created_at,
        updated_at=project.updated_at,
        test_case_count=test_case_count
    )

@router.post("")
async def create_project(
    request: ProjectCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[ProjectInfo]:
    """创建项目"""
    try:
        project = await ProjectService.create_project(request.name, user_id, db)
        return ResponseModel(message="项目创建成功", data=_project_info(project))
    except Exception as e:
        logger.error(f"项目创建失败: {str(e)}")
        raise HTTPException(status_code=500, detail="项目创建失败")

@router.get("")
async def list_projects(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[List[ProjectInfo]]:
    """获取当前用户的项目列表"""
    try:
        projects = await ProjectService.list_projects(user_id, db)
        return ResponseModel(data=[_project_info(p, count) for p, count in projects])
    except Exception as e:
        logger.error(f"获取项目列表失败: {str(e)}")
        raise HTTPException(status_code=500, detail="获取项目列表失败")

@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[ProjectInfo]:
    """获取项目详情"""
    try:
        project = await ProjectService.get_owned_project(project_id, user_id, db)
        count = await ProjectService.count_test_cases(project.id, db)
        return ResponseModel(data=_project_info(project, count))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"获取项目详情失败: {str(e)}")
        raise HTTPException(status_code=500, detail="获取项目详情失败")

@router.post("/{project_id}/test-cases")
async def create_test_case(
    project_id: str,
    request: TestCaseCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[TestCaseInfo]:
    """在项目下创建用例，返回新用例(含ID)"""
    try:
        project = await ProjectService.get_owned_project(project_id, user_id, db)
        test_case = await TestCaseService.create_test_case(project.id, request, db)
        return ResponseModel(message="用例创建成功", data=TestCaseInfo.model_validate(test_case))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"用例创建失败: {str(e)}")
        raise HTTPException(status_code=500, detail="用例创建失败")
