import pytest
from sqlalchemy.exc import OperationalError

from taskengine.errors import AuditWriteFailurePolicy
from taskengine.models.enums import ModelProvider, OutputFormat, PromptExecutionStatus
from taskengine.models.llm import ModelInterface, PromptTemplate
from taskengine.repositories.llm_repository import ModelInterfaceRepository, PromptRepository
from taskengine.schemas.prompts import ExecutionContext
from taskengine.schemas.responses import PromptResponse, TokenUsage
from taskengine.services.prompt_library import PromptLibrary, extract_variables, render_template

INPUT_SCHEMA = {
    "type": "object",
    "properties": {"company": {"type": "string"}},
    "required": ["company"],
}
OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {"risk": {"type": "string", "enum": ["low", "high"]}},
    "required": ["risk"],
}


@pytest.fixture
def llm(mocker):
    client = mocker.MagicMock()
    client.execute_raw.return_value = PromptResponse(
        success=True,
        data="A short summary.",
        raw_response="A short summary.",
        tokens_used=TokenUsage(input=120, output=30),
        cost_estimate=0.001,
        duration_ms=40,
    )
    client.execute_prompt_for_json.return_value = PromptResponse(
        success=True,
        data={"risk": "low"},
        raw_response='{"risk": "low"}',
        tokens_used=TokenUsage(input=100, output=10),
        duration_ms=25,
    )
    return client


@pytest.fixture
def resolver(mocker, llm):
    return mocker.MagicMock(return_value=llm)


@pytest.fixture
def library(session, resolver):
    return PromptLibrary(session, client_resolver=resolver)


def add_template(session, code="company_summary", **fields):
    values = dict(
        prompt_code=code,
        prompt_name="Company summary",
        system_prompt="You are an analyst for {{company}}.",
        user_prompt_template="Summarise {{ company }} using {{facts}}.",
        default_model="claude-sonnet-4-5-20250929",
        input_schema=INPUT_SCHEMA,
        output_format=OutputFormat.TEXT,
    )
    values.update(fields)
    return PromptRepository(session).create_template(PromptTemplate(**values))


def test_render_template_values():
    rendered = render_template("{{name}} / {{ data }} / {{missing}}", {"name": "Ada", "data": {"a": 1}})
    assert rendered == 'Ada / {\n  "a": 1\n} / {{missing}}'


def test_render_template_non_string_scalars():
    assert render_template("{{n}} {{flag}} {{nothing}}", {"n": 3, "flag": True, "nothing": None}) == "3 true null"


def test_render_is_idempotent_once_placeholders_resolved():
    variables = {"a": "x", "b": [1, 2]}
    once = render_template("{{a}} and {{b}}", variables)
    assert render_template(once, variables) == once


def test_render_template_keys_with_punctuation():
    variables = {"user-name": "Ada", "order.id": 42, "step_2": "ship"}
    rendered = render_template("{{user-name}} {{ order.id }} {{step_2}} {{other-key}}", variables)
    assert rendered == "Ada 42 ship {{other-key}}"
    assert extract_variables("{{user-name}} {{ order.id }}") == ["user-name", "order.id"]


def test_extract_variables_unique_in_order():
    assert extract_variables("{{a}} {{ b }} {{a}} {{c}}") == ["a", "b", "c"]
    assert extract_variables("") == []


def test_get_prompt_renders_both_prompts(session, library):
    add_template(session)
    rendered = library.get_prompt("company_summary", {"company": "Acme", "facts": "2024 filings"})
    assert rendered.system_prompt == "You are an analyst for Acme."
    assert rendered.user_prompt == "Summarise Acme using 2024 filings."
    assert rendered.output_format == "text"
    assert library.get_prompt("missing", {}) is None


def test_unknown_template(library, resolver):
    out = library.execute_prompt("missing", {})
    assert not out.success
    assert out.error == "Prompt template 'missing' not found"
    resolver.assert_not_called()


def test_input_validation_short_circuits_before_model_and_audit(session, library, resolver, llm):
    template = add_template(session)

    out = library.execute_prompt("company_summary", {"facts": "none"})

    assert not out.success
    assert out.error.startswith("Input validation failed")
    assert "'company' is a required property" in out.error
    resolver.assert_not_called()
    llm.execute_raw.assert_not_called()
    assert PromptRepository(session).list_executions(template.id) == []


def test_text_prompt_is_audited(session, library, llm, resolver):
    template = add_template(session)
    context = ExecutionContext(stakeholder_id="s-1", workflow_instance_id="inst-1", task_id="task-1")

    out = library.execute_prompt("company_summary", {"company": "Acme", "facts": "x"}, context)

    assert out.success
    assert out.data == "A short summary."
    resolver.assert_called_once_with(ModelProvider.ANTHROPIC, None)
    args = llm.execute_raw.call_args.args
    assert args[0] == "You are an analyst for Acme."
    assert args[2] == "claude-sonnet-4-5-20250929"

    [execution] = PromptRepository(session).list_executions(template.id)
    assert execution.id == out.execution_id
    assert execution.status == PromptExecutionStatus.COMPLETED
    assert execution.tokens_input == 120
    assert execution.tokens_output == 30
    assert execution.task_id == "task-1"
    assert execution.stakeholder_id == "s-1"
    assert execution.completed_at is not None


def test_json_output_schema_mismatch_downgrades(session, library, llm):
    template = add_template(session, output_format=OutputFormat.JSON, output_schema=OUTPUT_SCHEMA)
    llm.execute_prompt_for_json.return_value = PromptResponse(success=True, data={"risk": "medium"}, raw_response="{}")

    out = library.execute_prompt("company_summary", {"company": "Acme"})

    assert not out.success
    assert out.error.startswith("Output validation failed")
    [execution] = PromptRepository(session).list_executions(template.id)
    assert execution.status == PromptExecutionStatus.FAILED
    assert execution.error_message == out.error


def test_json_output_passes_schema(session, library, llm):
    add_template(session, output_format=OutputFormat.JSON, output_schema=OUTPUT_SCHEMA)
    out = library.execute_prompt("company_summary", {"company": "Acme"})
    assert out.success
    assert out.data == {"risk": "low"}
    llm.execute_raw.assert_not_called()


def test_model_resolution_order(session, library, llm, resolver):
    iface = ModelInterfaceRepository(session).create(ModelInterface(
        provider=ModelProvider.OPENAI, api_key_enc="unused", default_model="gpt-4o",
    ))
    add_template(session, default_llm_interface_id=iface.id)

    library.execute_prompt("company_summary", {"company": "Acme"})
    assert llm.execute_raw.call_args.args[2] == "gpt-4o"
    resolver.assert_called_with(ModelProvider.OPENAI, iface.id)

    library.execute_prompt("company_summary", {"company": "Acme"}, ExecutionContext(model_override="gpt-4o-mini"))
    assert llm.execute_raw.call_args.args[2] == "gpt-4o-mini"


def test_failed_model_call_is_audited(session, library, llm):
    template = add_template(session)
    llm.execute_raw.return_value = PromptResponse(success=False, error="server error", status_code=500)

    out = library.execute_prompt("company_summary", {"company": "Acme"})

    assert not out.success
    [execution] = PromptRepository(session).list_executions(template.id)
    assert execution.status == PromptExecutionStatus.FAILED
    assert execution.error_message == "server error"


def test_audit_failure_continues_by_default(session, library, llm, mocker):
    add_template(session)
    mocker.patch.object(library.prompts, "create_execution", side_effect=OperationalError("insert", {}, Exception("disk full")))

    out = library.execute_prompt("company_summary", {"company": "Acme"})

    assert out.success
    assert out.execution_id is None
    llm.execute_raw.assert_called_once()


def test_audit_failure_raises_under_raise_policy(session, resolver, mocker):
    add_template(session)
    library = PromptLibrary(session, client_resolver=resolver, audit_policy=AuditWriteFailurePolicy.RAISE)
    mocker.patch.object(library.prompts, "create_execution", side_effect=OperationalError("insert", {}, Exception("disk full")))

    with pytest.raises(OperationalError):
        library.execute_prompt("company_summary", {"company": "Acme"})
