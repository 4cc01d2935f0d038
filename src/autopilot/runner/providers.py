"""Agent CLI providers and command construction."""

from autopilot.config import Settings

PROVIDERS: dict[str, dict] = {
    "claude": {
        "name": "Claude",
        "models": {
            "opus": "claude-opus-4-5-20250514",
            "sonnet": "claude-sonnet-4-20250514",
            "haiku": "claude-haiku-3-5-20250615",
            # Aliases
            "default": "sonnet",
            "fast": "haiku",
            "best": "opus",
        },
        "default_model": "sonnet",
    },
}


def resolve_model(provider: str, model: str | None) -> str | None:
    """Resolve a model alias to a model ID.

    Unknown names are passed through unchanged so full model IDs work too.

    Args:
        provider: Provider key (e.g. "claude")
        model: Model name, alias, or None for the provider default

    Returns:
        str | None: Model ID, or the name unchanged for unknown providers
    """
    config = PROVIDERS.get(provider)
    if config is None:
        return model

    models = config["models"]
    name = model or config["default_model"]
    # Aliases may point at other aliases ("best" -> "opus" -> ID)
    seen = set()
    while name in models and name not in seen:
        seen.add(name)
        name = models[name]
    return name


def build_agent_command(settings: Settings, prompt: str) -> tuple[str, list[str]]:
    """Build the agent invocation for one prompt.

    Args:
        settings: Process settings (command, base args, model)
        prompt: Fully composed prompt

    Returns:
        tuple[str, list[str]]: Executable and its arguments
    """
    args = list(settings.agent_args)
    if settings.agent_model:
        args.extend(["--model", resolve_model(settings.agent_provider, settings.agent_model)])
    args.append(prompt)
    return settings.agent_command, args
