"""
Instruction templates for price list extraction, one per locale.
"""
import re

from offering_ingest.models.domain import ChunkContext, Locale

ARABIC_SYSTEM_PROMPT = """أنت خبير في تحليل قوائم أسعار القهوة الخضراء. استخرج جميع المحاصيل من المستند.

لكل محصول استخرج (بالعربية):
- name: الاسم
- origin: البلد
- region: المنطقة
- process: طريقة المعالجة
- price: السعر (رقم فقط)
- currency: SAR أو USD
- altitude: الارتفاع
- variety: الصنف
- flavor: النكهات
- score: التقييم
- available: true/false

أرجع JSON array فقط بدون نص إضافي. مثال:
[{"name":"إثيوبيا يرغاشيفي","origin":"إثيوبيا","price":85,"currency":"SAR"}]"""

ENGLISH_SYSTEM_PROMPT = """You are an expert in analyzing green coffee price lists. Extract all coffee crops.

For each crop extract:
- name, origin, region, process, price (number only), currency, altitude, variety, flavor, score, available

Return JSON array only. Example:
[{"name":"Ethiopia Yirgacheffe","origin":"Ethiopia","price":85,"currency":"SAR"}]"""

SYSTEM_PROMPTS = {
    Locale.ARABIC: ARABIC_SYSTEM_PROMPT,
    Locale.ENGLISH: ENGLISH_SYSTEM_PROMPT,
}

PART_LABELS = {
    Locale.ARABIC: "[جزء {part}/{total}] ",
    Locale.ENGLISH: "[Part {part}/{total}] ",
}

USER_TEMPLATES = {
    Locale.ARABIC: '{part_label}استخرج جميع محاصيل القهوة من "{source}":\n\n{text}',
    Locale.ENGLISH: '{part_label}Extract all coffee crops from "{source}":\n\n{text}',
}

UNSAFE_LABEL_CHARACTERS = re.compile(r"[<>\"'&]")


def sanitize_label(label: str) -> str:
    """Strip characters that could break out of the quoted source label"""
    return UNSAFE_LABEL_CHARACTERS.sub("", label)


def build_system_prompt(locale: Locale) -> str:
    return SYSTEM_PROMPTS[Locale(locale)]


def build_user_message(chunk_text: str, context: ChunkContext) -> str:
    """Instruction text plus chunk content, annotated with its part number"""
    locale = Locale(context.locale)
    part_label = ""
    if context.is_multi_part:
        part_label = PART_LABELS[locale].format(
            part=context.index + 1, total=context.total
        )

    return USER_TEMPLATES[locale].format(
        part_label=part_label,
        source=sanitize_label(context.source_name),
        text=chunk_text,
    )
