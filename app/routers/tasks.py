from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from typing_extensions import Annotated

from app.dependencies import get_task_service
from app.exceptions import TaskValidationError
from app.models import MAX_INT64, TaskCreate, TaskCreated, TaskResponse, TaskUpdate
from app.services.task_service import TaskService

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])

TASK_NOT_FOUND = "Task not found"

TaskId = Annotated[int, Path(ge=0, le=MAX_INT64)]


def _positive_int(raw: str | None) -> int | None:
    """Lenient query parsing: anything that is not a positive int64 is ignored."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if 0 < value <= MAX_INT64 else None


def _json(snapshot: str, status_code: int = status.HTTP_200_OK) -> Response:
    return Response(content=snapshot, status_code=status_code, media_type="application/json")


@router.post("", response_model=TaskCreated, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate, service: TaskService = Depends(get_task_service)
):
    """Create a new task"""
    try:
        task_id = await service.create_task(task_data)
    except TaskValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return TaskCreated(id=task_id)


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    page: str | None = Query(default=None),
    size: str | None = Query(default=None),
    service: TaskService = Depends(get_task_service),
):
    """List tasks, newest first"""
    return await service.list_tasks(_positive_int(page), _positive_int(size))


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: TaskId, service: TaskService = Depends(get_task_service)
):
    """Get a specific task by ID"""
    snapshot = await service.get_task(task_id)

    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=TASK_NOT_FOUND,
        )
    return _json(snapshot)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_data: TaskUpdate,
    task_id: TaskId,
    service: TaskService = Depends(get_task_service),
):
    try:
        snapshot = await service.update_task(task_id, task_data)
    except TaskValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=TASK_NOT_FOUND,
        )
    return _json(snapshot)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: TaskId, service: TaskService = Depends(get_task_service)
):
    """Delete a task"""
    deleted = await service.delete_task(task_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=TASK_NOT_FOUND,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
