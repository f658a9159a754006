# FILE: blender_agent/memory/service.py
"""
Conversation service layer.

Plain functions take a Session, as the REST layer uses them with get_db().
ConversationStore wraps them with a session factory for the orchestrator,
which opens one short session per operation.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from blender_agent import config
from blender_agent.agent.messages import DEFAULT_CONVERSATION_TITLE, derive_title
from blender_agent.memory import models, schemas


# ============== CONVERSATION ==============

def create_conversation(db: Session, user_id: str, title: Optional[str] = None) -> models.Conversation:
    conversation = models.Conversation(user_id=user_id, title=derive_title(title or ""))
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation


def get_conversation_for_user(db: Session, user_id: str, conversation_id: str) -> Optional[models.Conversation]:
    return (
        db.query(models.Conversation)
        .filter(models.Conversation.id == conversation_id, models.Conversation.user_id == user_id)
        .first()
    )


def list_conversations_for_user(db: Session, user_id: str) -> List[models.Conversation]:
    return (
        db.query(models.Conversation)
        .filter(models.Conversation.user_id == user_id)
        .order_by(models.Conversation.updated_at.desc())
        .all()
    )


def delete_conversation_for_user(db: Session, user_id: str, conversation_id: str) -> bool:
    conversation = get_conversation_for_user(db, user_id, conversation_id)
    if not conversation:
        return False
    db.delete(conversation)
    db.commit()
    return True


def touch_conversation(
    db: Session,
    conversation_id: str,
    scene_context: Optional[Any] = None,
    title: Optional[str] = None,
) -> Optional[models.Conversation]:
    """Bump updated_at; optionally replace the scene context and title."""
    conversation = db.query(models.Conversation).filter(models.Conversation.id == conversation_id).first()
    if not conversation:
        return None
    if scene_context is not None:
        conversation.last_scene_context = scene_context
    if title:
        conversation.title = derive_title(title)
    conversation.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(conversation)
    return conversation


# ============== MESSAGE ==============

def save_message(db: Session, conversation_id: str, data: schemas.MessageCreate) -> models.Message:
    message = models.Message(
        conversation_id=conversation_id,
        role=data.role,
        content=data.content,
        provider=data.provider,
        host_result=data.host_result,
        scene_context=data.scene_context,
        meta=data.metadata,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def list_messages(db: Session, conversation_id: str) -> List[models.Message]:
    return (
        db.query(models.Message)
        .filter(models.Message.conversation_id == conversation_id)
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .all()
    )


def get_history_window(db: Session, conversation_id: str, limit: int = 10) -> List[Dict[str, str]]:
    """Last `limit` user/assistant messages, oldest first, as LLM history turns."""
    recent = (
        db.query(models.Message)
        .filter(
            models.Message.conversation_id == conversation_id,
            models.Message.role.in_(("user", "assistant")),
        )
        .order_by(models.Message.created_at.desc(), models.Message.id.desc())
        .limit(limit)
        .all()
    )
    return [{"role": m.role, "content": m.content} for m in reversed(recent)]


# ============== STORE (orchestrator-facing) ==============

class ConversationStore:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from blender_agent.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def create(self, user_id: str, title: Optional[str] = None) -> schemas.ConversationOut:
        with self._session_factory() as db:
            return schemas.ConversationOut.model_validate(create_conversation(db, user_id, title))

    def get(self, user_id: str, conversation_id: str) -> Optional[schemas.ConversationOut]:
        with self._session_factory() as db:
            conversation = get_conversation_for_user(db, user_id, conversation_id)
            return schemas.ConversationOut.model_validate(conversation) if conversation else None

    def history(self, conversation_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        with self._session_factory() as db:
            return get_history_window(db, conversation_id, limit or config.AGENT_HISTORY_WINDOW)

    def save_message(self, conversation_id: str, data: schemas.MessageCreate) -> schemas.MessageOut:
        with self._session_factory() as db:
            return schemas.MessageOut.model_validate(save_message(db, conversation_id, data))

    def messages(self, conversation_id: str) -> List[schemas.MessageOut]:
        with self._session_factory() as db:
            return [schemas.MessageOut.model_validate(m) for m in list_messages(db, conversation_id)]

    def touch(
        self,
        conversation_id: str,
        scene_context: Optional[Any] = None,
        prompt_for_title: Optional[str] = None,
    ) -> Optional[schemas.ConversationOut]:
        """Store the scene context; retitle only while the title is still the default."""
        with self._session_factory() as db:
            current = db.query(models.Conversation).filter(models.Conversation.id == conversation_id).first()
            title = None
            if current and prompt_for_title and current.title in ("", DEFAULT_CONVERSATION_TITLE):
                title = prompt_for_title
            conversation = touch_conversation(db, conversation_id, scene_context=scene_context, title=title)
            return schemas.ConversationOut.model_validate(conversation) if conversation else None
