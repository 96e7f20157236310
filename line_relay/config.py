from typing import Literal, Optional

from pydantic_settings import BaseSettings

DEFAULT_SYSTEM_PROMPT = "你是客服助理，請用繁體中文簡潔回答使用者的問題。"


class Settings(BaseSettings):
    # LINE Messaging API
    line_channel_access_token: Optional[str] = None
    line_api_base: str = "https://api.line.me"
    line_max_text_chars: int = 4800
    reply_timeout_ms: int = 12000
    push_timeout_ms: int = 12000

    # AI responder
    openai_api_key: Optional[str] = None
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    ai_model: str = "gpt-4o-mini"
    ai_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    ai_max_tokens: int = 256
    ai_temperature: float = 0.3
    ai_timeout_ms: int = 18000

    # Vendor forward
    vendor_forward_url: Optional[str] = None
    vendor_shared_secret: Optional[str] = None
    vendor_signature_header: str = "X-Line-Signature"
    vendor_timeout_ms: int = 25000
    vendor_min_reply_chars: int = 8

    # Routing policy
    order_ack_enabled: bool = True
    vendor_ack_enabled: bool = True
    fallback_mode: Literal["ai", "link"] = "ai"
    fallback_link_url: Optional[str] = None
    snooze_minutes: int = 30
    welcome_on_follow: bool = True

    # Internal /push endpoint; disabled while unset
    push_secret: Optional[str] = None

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
