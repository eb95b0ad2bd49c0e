"""
Системный промпт ассистента дневника
"""
from typing import List
from diaria.models import DiarySearchResult, format_entry_text


PERSONA_PROMPT = (
    "You are a helpful AI assistant for a personal diary application called Diaria. "
    "You help users reflect on their diary entries, summarize their experiences, "
    "and provide insights based on their personal journal.\n\n"
)

NO_CONTEXT_PROMPT = (
    "No relevant diary entries were found for this query. "
    "You can still help the user with general questions about journaling.\n"
)


def build_system_prompt(diaries: List[DiarySearchResult]) -> str:
    """
    Формирует системный промпт с найденными записями дневника

    Args:
        diaries: Записи, найденные семантическим поиском

    Returns:
        Текст системного промпта
    """
    parts = [PERSONA_PROMPT]

    if not diaries:
        parts.append(NO_CONTEXT_PROMPT)
        return "".join(parts)

    parts.append("Here are relevant diary entries from the user:\n\n")
    for i, diary in enumerate(diaries, 1):
        parts.append(f"--- Diary Entry {i} (Date: {diary.date}) ---\n")
        if diary.mood:
            parts.append(f"Mood: {diary.mood}\n")
        if diary.weather:
            parts.append(f"Weather: {diary.weather}\n")
        parts.append(f"Content:\n{format_entry_text(diary.content)}\n\n")

    parts.append(
        "Use these diary entries to provide personalized and relevant responses. "
        "When referencing specific entries, mention the date.\n"
    )
    return "".join(parts)
