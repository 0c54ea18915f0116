"""AI chat extension: a chat participant running the tool loop, plus an open-tab command."""

PARTICIPANT_ID = "core-ai"

SYSTEM_PROMPT = (
    "You are a coding assistant inside an editor. You have access to tools. "
    "If you need to read a file, use 'read_file'."
)


async def read_file(args):
    return await api.workspace.read_file(args["path"])


READ_FILE_TOOL = {
    "name": "read_file",
    "description": "Read the content of a file in the workspace",
    "parameters": {
        "type": "object",
        "properties": {"path": {"type": "string"}},
        "required": ["path"],
    },
    "handler": read_file,
    "summary": lambda args: f"Read {args.get('path')} successfully",
}


def open_assistant():
    panel = api.components.get("ChatPanel")
    if panel is None:
        api.ui.notify("Chat panel is not available in this shell")
        return
    api.window.open_tab(
        "ai-assistant",
        "AI Assistant",
        panel(participant_id=PARTICIPANT_ID, title="AI Assistant"),
    )


def activate(api, ui, icons):
    api.chat.register_chat_participant(
        {
            "id": PARTICIPANT_ID,
            "name": "Assistant",
            "full_name": "AI Assistant",
            "description": "Agent with tool use (reads workspace files).",
            "icon": "Bot",
            "handler": api.chat.create_tool_agent([READ_FILE_TOOL], SYSTEM_PROMPT),
        }
    )
    api.commands.register(
        id="ai.chat.open",
        title="Open AI Assistant",
        category="AI",
        handler=open_assistant,
    )
    api.menus.register_file_menu(label="AI Assistant", command_id="ai.chat.open", order=999)
