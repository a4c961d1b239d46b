import json
import re
import time
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from taskengine.config import AUDIT_WRITE_FAILURE_POLICY, DEFAULT_LLM_PROVIDER
from taskengine.errors import AuditWriteFailurePolicy
from taskengine.llm.base import LLMClient
from taskengine.llm.factory import get_llm_client
from taskengine.models.enums import ModelProvider, OutputFormat, PromptExecutionStatus
from taskengine.models.llm import ModelInterface, PromptTemplate
from taskengine.repositories.llm_repository import ModelInterfaceRepository, PromptRepository
from taskengine.schemas.prompts import ExecutionContext, RenderedPrompt
from taskengine.schemas.responses import PromptResponse
from taskengine.services.schema_validator import SchemaValidator, ValidationResult

logger = structlog.get_logger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")

ClientResolver = Callable[[ModelProvider, Optional[str]], LLMClient]


def render_template(template: str, variables: Dict[str, Any]) -> str:
    """Substitute {{name}} placeholders. Unknown names are left as they are."""

    def substitute(match):
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        if isinstance(value, str):
            return value
        return json.dumps(value, indent=2, default=str)

    return PLACEHOLDER.sub(substitute, template or "")


def extract_variables(template: str) -> List[str]:
    names: List[str] = []
    for name in PLACEHOLDER.findall(template or ""):
        if name not in names:
            names.append(name)
    return names


class PromptLibrary:
    """Loads prompt templates, renders them and runs them against a model with an audit trail."""

    def __init__(
        self,
        session: Session,
        client_resolver: Optional[ClientResolver] = None,
        validator: Optional[SchemaValidator] = None,
        audit_policy: AuditWriteFailurePolicy = AuditWriteFailurePolicy(AUDIT_WRITE_FAILURE_POLICY),
    ):
        self.session = session
        self.prompts = PromptRepository(session)
        self.interfaces = ModelInterfaceRepository(session)
        self.client_resolver = client_resolver or (
            lambda provider, interface_id: get_llm_client(session, provider, interface_id)
        )
        self.validator = validator or SchemaValidator()
        self.audit_policy = audit_policy

    render_template = staticmethod(render_template)
    extract_variables = staticmethod(extract_variables)

    def get_prompt_template(self, prompt_code: str) -> Optional[PromptTemplate]:
        return self.prompts.get_active_template(prompt_code)

    def get_prompt(self, prompt_code: str, variables: Dict[str, Any]) -> Optional[RenderedPrompt]:
        template = self.get_prompt_template(prompt_code)
        if template is None:
            return None
        return self._render(template, variables)

    def _render(self, template: PromptTemplate, variables: Dict[str, Any]) -> RenderedPrompt:
        return RenderedPrompt(
            system_prompt=render_template(template.system_prompt, variables) if template.system_prompt else "",
            user_prompt=render_template(template.user_prompt_template, variables),
            model=template.default_model,
            temperature=template.temperature,
            max_tokens=template.max_tokens,
            output_format=OutputFormat(template.output_format).value,
            output_schema=template.output_schema,
        )

    def validate_input(self, data: Any, schema: Optional[dict]) -> ValidationResult:
        return self.validator.validate(data, schema)

    def validate_output(self, data: Any, schema: Optional[dict]) -> ValidationResult:
        return self.validator.validate(data, schema)

    def _resolve_interface(self, template: PromptTemplate) -> Optional[ModelInterface]:
        if not template.default_llm_interface_id:
            return None
        return self.interfaces.get_active(template.default_llm_interface_id)

    # Audit writes. Whether a failed write stops execution is the audit policy's call.

    def _audit_start(self, **fields) -> Optional[str]:
        try:
            return self.prompts.create_execution(**fields).id
        except SQLAlchemyError as e:
            self.session.rollback()
            if self.audit_policy == AuditWriteFailurePolicy.RAISE:
                raise
            logger.error("prompt_audit_write_failed", phase="start", error=str(e))
            return None

    def _audit_finish(self, execution_id: Optional[str], status: PromptExecutionStatus, **fields) -> None:
        if execution_id is None:
            return
        try:
            self.prompts.complete_execution(execution_id, status, **fields)
        except SQLAlchemyError as e:
            self.session.rollback()
            if self.audit_policy == AuditWriteFailurePolicy.RAISE:
                raise
            logger.error("prompt_audit_write_failed", phase="finish", execution_id=execution_id, error=str(e))

    def execute_prompt(
        self,
        prompt_code: str,
        variables: Dict[str, Any],
        context: Optional[ExecutionContext] = None,
    ) -> PromptResponse:
        t0 = time.monotonic()
        context = context or ExecutionContext()

        def elapsed_ms() -> int:
            return int((time.monotonic() - t0) * 1000)

        template = self.get_prompt_template(prompt_code)
        if template is None:
            return PromptResponse(
                success=False,
                error=f"Prompt template '{prompt_code}' not found",
                duration_ms=elapsed_ms(),
            )

        input_validation = self.validate_input(variables, template.input_schema)
        if not input_validation.valid:
            return PromptResponse(
                success=False,
                error=f"Input validation failed: {', '.join(input_validation.errors)}",
                duration_ms=elapsed_ms(),
            )

        rendered = self._render(template, variables)
        interface = self._resolve_interface(template)
        provider = ModelProvider(interface.provider if interface else DEFAULT_LLM_PROVIDER)
        model = context.model_override or (interface.default_model if interface else None) or rendered.model

        # Configuration errors surface to the caller before anything is audited
        client = self.client_resolver(provider, interface.id if interface else None)

        execution_id = self._audit_start(
            prompt_template_id=template.id,
            llm_interface_id=interface.id if interface else None,
            stakeholder_id=context.stakeholder_id,
            workflow_instance_id=context.workflow_instance_id,
            task_id=context.task_id,
            input_data=variables,
            rendered_prompt=f"{rendered.system_prompt}\n\n{rendered.user_prompt}",
            provider=provider.value,
            model_used=model,
            temperature=rendered.temperature,
            max_tokens=rendered.max_tokens,
        )
        logger.info(
            "prompt_execution_started",
            prompt_code=prompt_code,
            provider=provider.value,
            model=model,
            execution_id=execution_id,
        )

        is_json = rendered.output_format == OutputFormat.JSON.value
        try:
            if is_json:
                response = client.execute_prompt_for_json(
                    rendered.system_prompt, rendered.user_prompt, model, rendered.temperature, rendered.max_tokens
                )
            else:
                response = client.execute_raw(
                    rendered.system_prompt, rendered.user_prompt, model, rendered.temperature, rendered.max_tokens
                )
        except Exception as e:
            logger.exception("prompt_execution_fault", prompt_code=prompt_code, execution_id=execution_id)
            self._audit_finish(execution_id, PromptExecutionStatus.FAILED, error_message=str(e), duration_ms=elapsed_ms())
            return PromptResponse(
                success=False,
                error=str(e) or e.__class__.__name__,
                duration_ms=elapsed_ms(),
                model=model,
                execution_id=execution_id,
            )

        if response.success and is_json and rendered.output_schema:
            output_validation = self.validate_output(response.data, rendered.output_schema)
            if not output_validation.valid:
                response.success = False
                response.error = f"Output validation failed: {', '.join(output_validation.errors)}"

        response.execution_id = execution_id
        self._audit_finish(
            execution_id,
            PromptExecutionStatus.COMPLETED if response.success else PromptExecutionStatus.FAILED,
            output_data=response.data,
            raw_response=response.raw_response,
            error_message=response.error,
            tokens_input=response.tokens_used.input,
            tokens_output=response.tokens_used.output,
            cost_estimate=response.cost_estimate,
            duration_ms=response.duration_ms,
        )
        logger.info(
            "prompt_execution_finished",
            prompt_code=prompt_code,
            execution_id=execution_id,
            success=response.success,
            duration_ms=response.duration_ms,
        )
        return response
