from __future__ import annotations

CURRENT_SCHEMA_VERSION = 1
DEFAULT_CONFIG_FILENAME = "bisync.yml"
DEFAULT_DB_FILENAME = "sessions.db"

SOURCE_LOCALE = "en"
CACHE_LOCALE = "ko"

SECTION_STYLE = "style"
SECTION_CHARACTER = "character"
SECTION_COMPOSITION = "composition"
SECTION_UI = "ui_specific"
SECTION_LOGO = "logo_specific"
SECTION_PIXELART = "pixelart_specific"
SECTION_PROMPTS = "prompts"

CORE_SECTIONS = (SECTION_STYLE, SECTION_CHARACTER, SECTION_COMPOSITION)
VARIANT_SECTIONS = (SECTION_UI, SECTION_LOGO, SECTION_PIXELART)
SECTION_ORDER = (*CORE_SECTIONS, *VARIANT_SECTIONS, SECTION_PROMPTS)

# Sections whose fields feed the derived positive prompt.
PROMPT_SOURCE_SECTIONS = CORE_SECTIONS

FIELD_NEGATIVE_PROMPT = "negative_prompt"
FIELD_CUSTOM_PROMPT = "user_custom_prompt"
FIELD_POSITIVE_PROMPT = "positive_prompt"
