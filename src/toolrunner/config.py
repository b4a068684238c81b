"""Configuration module for toolrunner using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant that can use tools when needed.

TOOL USAGE RULES:
- When a user asks what tools you have, use the list_tools function to get the actual available tools
- When a user asks you to DO something (calculate, store data, query information, etc.), use the appropriate tool
- Use the function calling capability provided by the system - tools are available in the tools array
- Wait for tool results before continuing your response
- After using tools, provide a natural conversational response about what you accomplished
- If you cannot find something after 4 attempts with different tool parameters, ask the user for help

Never make up or guess what tools you have.

For greetings or general conversation that does not require tools, respond naturally."""


class ToolRunnerSettings(BaseSettings):
    """Main configuration settings for toolrunner.

    All settings can be overridden via environment variables with the
    TOOLRUNNER_ prefix. For example, TOOLRUNNER_OLLAMA_HOST will override
    the ollama_host setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Model
    ollama_host: str = "http://localhost:11434"
    model: str = "llama3.2:latest"
    temperature: float = 0.3
    max_tokens: int = 1000
    request_timeout: float = 30.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Sessions
    max_sessions: int = 5
    max_errors: int = 10
    max_history_turns: int = 20

    # Orchestration (None = unbounded, guarded by loop detection only)
    max_iterations: int | None = None
    max_tool_errors: int = 10

    # Autonomous decision agent
    autonomous_max_executions: int = 100
    execution_delay: float = 3.0
    autonomous_min_delay: float = 1.0
    autonomous_max_delay: float = 10.0
    context_max_entries: int = 50

    # Loop guard thresholds
    loop_repeat_threshold: int = 3
    loop_window_size: int = 10
    loop_window_seconds: float = 120.0
    error_lookback: int = 5
    error_threshold: int = 3

    # Debug trace
    debug_max_events: int = 1000
    debug_max_flows: int = 20

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="TOOLRUNNER_")

    def generation_options(self) -> dict[str, float | int]:
        """Get the Ollama generation options derived from these settings."""
        return {"temperature": self.temperature, "num_predict": self.max_tokens}
