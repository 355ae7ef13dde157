from typing import List
from fastapi import APIRouter, UploadFile, File as FastAPIFile, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
from src.api.models.base import ResponseModel
from src.api.models.file import TestCaseFileInfo
from src.api.services.auth import get_current_user_id
from src.api.services.file import FileService
from src.api.services.test_case import TestCaseService
from src.db.session import get_db
from src.storage import storage

router = APIRouter(prefix="/api/v1/test-cases/{test_case_id}/files", tags=["files"])

@router.post("")
async def upload_file(
    test_case_id: str,
    file: UploadFile = FastAPIFile(...),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[TestCaseFileInfo]:
    """上传用例附件"""
    try:
        test_case = await TestCaseService.get_owned_test_case(test_case_id, user_id, db)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

    try:
        db_file = await FileService.save_upload_file(test_case.id, file, db)
        return ResponseModel(
            message="文件上传成功",
            data=TestCaseFileInfo.model_validate(db_file)
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"文件上传失败: {str(e)}")
        raise HTTPException(status_code=500, detail="文件上传失败")

@router.get("")
async def list_files(
    test_case_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[List[TestCaseFileInfo]]:
    """获取用例附件列表(最新在前)"""
    try:
        test_case = await TestCaseService.get_owned_test_case(test_case_id, user_id, db)
        files = await FileService.list_files(test_case.id, db)
        return ResponseModel(data=[TestCaseFileInfo.model_validate(f) for f in files])
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"获取附件列表失败: {str(e)}")
        raise HTTPException(status_code=500, detail="获取附件列表失败")

@router.get("/{file_id}")
async def download_file(
    test_case_id: str,
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> FileResponse:
    """下载附件"""
    try:
        test_case = await TestCaseService.get_owned_test_case(test_case_id, user_id, db)
        db_file = await FileService.get_file(test_case.id, file_id, db)
        if not db_file:
            raise HTTPException(status_code=404, detail="附件不存在")

        path = storage.get_file_path(test_case.id, db_file.stored_name)
        if not path.exists():
            raise HTTPException(status_code=404, detail="附件文件已丢失")

        return FileResponse(path=str(path), filename=db_file.filename, media_type=db_file.mime_type)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"下载附件失败: {str(e)}")
        raise HTTPException(status_code=500, detail="下载附件失败")

@router.delete("/{file_id}")
async def delete_file(
    test_case_id: str,
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> ResponseModel[bool]:
    """删除附件"""
    try:
        test_case = await TestCaseService.get_owned_test_case(test_case_id, user_id, db)
        success = await FileService.delete_file(test_case.id, file_id, db)
        return ResponseModel(message="文件删除成功", data=success)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"文件删除失败: {str(e)}")
        raise HTTPException(status_code=500, detail="文件删除失败")
