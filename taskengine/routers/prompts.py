from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from taskengine.dependencies import get_session
from taskengine.errors import ConfigurationError
from taskengine.schemas.prompts import ExecutePromptRequest
from taskengine.services.prompt_library import PromptLibrary

router = APIRouter()

@router.post("/prompts/execute")
def execute_prompt(req: ExecutePromptRequest, session: Session = Depends(get_session)):
    try:
        response = PromptLibrary(session).execute_prompt(req.prompt_code, req.variables, req.context)
    except ConfigurationError as e:
        raise HTTPException(503, str(e))
    return response.model_dump()

@router.get("/prompts/{prompt_code}/variables")
def prompt_variables(prompt_code: str, session: Session = Depends(get_session)):
    library = PromptLibrary(session)
    template = library.get_prompt_template(prompt_code)
    if not template:
        raise HTTPException(404, f"Prompt template '{prompt_code}' not found")
    names = library.extract_variables(template.system_prompt or "")
    for name in library.extract_variables(template.user_prompt_template):
        if name not in names:
            names.append(name)
    return {"prompt_code": prompt_code, "variables": names}
