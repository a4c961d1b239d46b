import time
from typing import Optional, Any, List
from sqlmodel import select
from taskengine.repositories.base_repository import BaseRepository
from taskengine.models.llm import ModelInterface, PromptTemplate, PromptExecution
from taskengine.models.enums import ModelProvider, PromptExecutionStatus

class ModelInterfaceRepository(BaseRepository):
    def get_active(self, interface_id: str) -> Optional[ModelInterface]:
        statement = select(ModelInterface).where(
            ModelInterface.id == interface_id,
            ModelInterface.is_active == True,  # noqa: E712
        )
        return self.session.exec(statement).first()

    def list_active_defaults(self, provider: ModelProvider) -> List[ModelInterface]:
        statement = select(ModelInterface).where(
            ModelInterface.provider == provider,
            ModelInterface.is_active == True,  # noqa: E712
            ModelInterface.is_default == True,  # noqa: E712
        )
        return list(self.session.exec(statement).all())

    def create(self, interface: ModelInterface) -> ModelInterface:
        return self._save(interface)

class PromptRepository(BaseRepository):
    def get_active_template(self, prompt_code: str) -> Optional[PromptTemplate]:
        statement = select(PromptTemplate).where(
            PromptTemplate.prompt_code == prompt_code,
            PromptTemplate.is_active == True,  # noqa: E712
        )
        return self.session.exec(statement).first()

    def create_template(self, template: PromptTemplate) -> PromptTemplate:
        return self._save(template)

    def get_execution(self, execution_id: str) -> Optional[PromptExecution]:
        return self.session.get(PromptExecution, execution_id, populate_existing=True)

    def list_executions(self, prompt_template_id: str) -> List[PromptExecution]:
        statement = select(PromptExecution).where(PromptExecution.prompt_template_id == prompt_template_id)
        return list(self.session.exec(statement).all())

    def create_execution(self, **fields) -> PromptExecution:
        return self._save(PromptExecution(status=PromptExecutionStatus.RUNNING, **fields))

    def complete_execution(self, execution_id: str, status: PromptExecutionStatus, **fields: Any) -> bool:
        """Finalise an audit row. A row whose completed_at is already set is never touched again."""
        execution = self.get_execution(execution_id)
        if execution is None or execution.completed_at is not None:
            return False
        execution.status = status
        for key, value in fields.items():
            setattr(execution, key, value)
        execution.completed_at = time.time()
        self._save(execution)
        return True
