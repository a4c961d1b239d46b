from sqlmodel import SQLModel, Session, create_engine
from taskengine.config import DATABASE_URL

# Table modules must be imported so SQLModel.metadata knows every table
from taskengine.models import queue_item, service_config, execution_log, workflow, llm  # noqa: F401

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)

def get_session():
    with Session(engine) as session:
        yield session
