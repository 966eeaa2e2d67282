from sqlalchemy import Column, String, Text, Boolean
from sqlalchemy.orm import declarative_base
from enum import Enum as PyEnum

Base = declarative_base()


class TaskStatus(str, PyEnum):
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def can_move_to(self, target: "TaskStatus") -> bool:
        """Statuses only move forward: waiting -> processing -> completed | failed."""
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    TaskStatus.WAITING: {TaskStatus.PROCESSING, TaskStatus.FAILED},
    TaskStatus.PROCESSING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


class TaskType(str, PyEnum):
    GET_VIDEO = "get_video"
    GET_AUDIO = "get_audio"
    GET_LIVE_VIDEO = "get_live_video"
    GET_LIVE_AUDIO = "get_live_audio"
    GET_INFO = "get_info"


class Task(Base):
    __tablename__ = "tasks"

    task_id = Column(String, primary_key=True)
    key_name = Column(String, nullable=False)
    task_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=TaskStatus.WAITING.value)
    url = Column(Text, nullable=False)

    video_format = Column(String, nullable=True)
    audio_format = Column(String, nullable=True)
    output_format = Column(String, nullable=True)
    start_time = Column(String, nullable=True)
    end_time = Column(String, nullable=True)
    # SQLite keeps this as INTEGER 0/1; SQLAlchemy hands back a bool
    force_keyframes = Column(Boolean, nullable=False, default=False)
    duration = Column(String, nullable=True)

    error = Column(Text, nullable=True)
    file = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    completed_time = Column(String, nullable=True)

    def to_dict(self) -> dict:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    def __repr__(self) -> str:
        return f"<Task {self.task_id} {self.task_type} {self.status}>"
