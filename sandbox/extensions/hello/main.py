"""Hello extension: one status bar item, one side view, one command."""


def greet(name="world"):
    api.ui.notify(f"Hello, {name}!")
    return f"Hello, {name}!"


def render_sidebar():
    return {"type": "text", "title": "Hello", "body": "Demo extension showing how contributions are wired."}


def activate(api, ui, icons):
    api.commands.register(
        id="hello.greet",
        title="Say Hello",
        category="Hello",
        callback=greet,
    )
    api.status_bar.register_item(
        id="hello.status",
        text="Hello",
        alignment="right",
        priority=10,
        tooltip="Say hello",
        on_click=lambda: greet(),
    )
    api.views.register(
        id="hello.sidebar",
        title="Hello",
        icon="Info",
        component=render_sidebar,
    )


def deactivate():
    pass
