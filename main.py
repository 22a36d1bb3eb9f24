from autocode.config import load_config
from autocode.core.code_agent import run_code_agent
from autocode.core.schemas import CodeAgentEvent, MessageRole, MessageType
from autocode.infra.storage import create_message, use_database
from autocode.llm.client import OpenAIClient
from autocode.sandbox.e2b import E2BSandboxClient


def main():
    cfg = load_config()
    use_database(cfg.db_path)

    client = OpenAIClient(model=cfg.agent_model, temperature=cfg.agent_temperature)
    sandbox = E2BSandboxClient()

    event = CodeAgentEvent(
        project_id="demo",
        value="Build a todo app with add, complete and delete actions.",
    )

    create_message(
        project_id=event.project_id,
        content=event.value,
        role=MessageRole.USER,
        type=MessageType.RESULT,
    )
    result = run_code_agent(event, client=client, sandbox=sandbox, config=cfg)

    print(result)


if __name__ == "__main__":
    main()
