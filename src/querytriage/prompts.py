"""Prompt builders for the JSON-only classification calls."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
import json
from typing import Sequence

from .models import QueryMetricRecord, WordStatistic

CTR_SUSPICION_RULE = (
    "ВАЖНО: Обращай внимание на CTR! Запросы с показами ≥ 100 и CTR < 1% "
    "(или 0 кликов) подозрительны даже без других признаков: помечай их как TRASH или REVIEW."
)

QUERY_RESPONSE_SCHEMA = """{
  "queries": [
    {
      "query": "текст запроса",
      "category": "target|trash|review",
      "reason": "краткое объяснение",
      "minusWords": ["слово1", "слово2"]
    }
  ],
  "suggestedMinusWords": [
    {
      "word": "минус-слово",
      "reason": "почему нужно добавить",
      "category": "irrelevant|low_quality|competitor|informational|other"
    }
  ]
}"""

QUERY_RESPONSE_SCHEMA_WITH_ID = QUERY_RESPONSE_SCHEMA.replace(
    '"query": "текст запроса",', '"id": 0,\n      "query": "текст запроса",'
)

WORD_RESPONSE_SCHEMA = """{
  "minusWords": [
    {
      "word": "слово",
      "reason": "причина в контексте бизнеса",
      "confidence": "high|medium|low",
      "operator": "none|exclamation|quotes"
    }
  ]
}"""

REVIEW_RESPONSE_SCHEMA = """{
  "results": [
    {
      "query": "текст запроса",
      "category": "target|trash",
      "reason": "почему, в контексте бизнеса",
      "minusWord": "слово для минусации (только для trash)"
    }
  ]
}"""

UNIVERSAL_TARGET_WORDS = """=== УНИВЕРСАЛЬНЫЕ ЦЕЛЕВЫЕ СЛОВА (ДЛЯ ЛЮБОГО БИЗНЕСА) ===
- Коммерческие: оформить, сделать, получить, заказать, помощь, услуги, продлить, купить, заказ
- Вопросы покупателя: где, как, сколько, какие, можно, куда, нужно
- Контакт: цена, стоимость, консультация, телефон, адрес"""

_WORD_TAXONOMY = """=== КАТЕГОРИИ МУСОРА ===
- Информационный интент: новости, статья, википедия, реферат, что такое, изменения в законе
- Смежный, но другой интент: обучение профессии, работа и вакансии, открыть свой бизнес в той же нише
- Государственные и институциональные термины (госуслуги, министерство, суд), если бизнес не является таким учреждением
- Сделай сам: своими руками, самостоятельно, бесплатно, скачать, торрент, шаблон
- Топонимы других городов и регионов, если бизнес работает локально
- Названия конкурентов"""

_WORD_SAFETY_RULES = """=== НЕПРЕЛОЖНЫЕ ПРАВИЛА ===
1. Сначала пойми бизнес: что продаёт, кто покупает, какими словами ищут эти услуги.
2. Никогда не предлагай слово из списка конвертирующих слов.
3. Никогда не предлагай слово, которое может быть частью целевого запроса этого бизнеса.
   Пример: для автошколы слова «экзамен», «билеты», «категория», «гибдд» выглядят информационными,
   но «сдать экзамен в гибдд с автошколой» - это покупатель. Для юридической фирмы «оформить»,
   «регистрация», «документы» - это процедура, которую клиент и покупает.
4. Если сомневаешься, не включай слово. Пустой список лучше, чем заминусованный клиент."""

_OPERATOR_GUIDE = """=== ОПЕРАТОРЫ ЯНДЕКС.ДИРЕКТ ===
- exclamation: !слово фиксирует словоформу (если другая форма этого слова целевая)
- quotes: "слово" только точное совпадение (нужно редко)
- none: минусуются все словоформы"""


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _dump(data: object) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def serialize_query_records(
    records: Sequence[QueryMetricRecord], *, include_ids: bool = False
) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for index, record in enumerate(records):
        row: dict[str, object] = {}
        if include_ids:
            row["id"] = index
        row.update(
            query=record.query,
            impressions=record.impressions,
            clicks=record.clicks,
            cost=_round_half_up(record.cost),
            conversions=record.conversions,
            ctr=f"{record.ctr:.2f}",
            cpl=_round_half_up(record.cpl) if record.cpl is not None and record.cpl > 0 else None,
        )
        rows.append(row)
    return rows


def build_query_analysis_prompt(
    records: Sequence[QueryMetricRecord],
    business_description: str,
    *,
    target_cpl: float | None = None,
    include_ids: bool = False,
) -> str:
    """Prompt asking the model to put every query into target, trash or review."""

    lines = [
        "Проанализируй поисковые запросы рекламной кампании Яндекс.Директ.",
        "",
        f"Бизнес: {business_description}",
    ]
    if target_cpl:
        lines.append(f"Целевой CPL: {_round_half_up(target_cpl)}₽")
    lines += [
        "",
        "Поисковые запросы (отсортированы по затратам):",
        _dump(serialize_query_records(records, include_ids=include_ids)),
        "",
        "Категоризируй каждый запрос:",
        "1. TARGET (целевой): коммерческий интент, соответствует бизнесу",
        "2. TRASH (мусор): нерелевантные, информационные, конкуренты, ошибочные",
        "3. REVIEW (требует проверки): неоднозначные запросы",
        "",
        CTR_SUSPICION_RULE,
        "",
        "Для TRASH запросов предложи минус-слова. Минус-слово должно встречаться в тексте запроса.",
    ]
    if include_ids:
        lines.append("Для каждого запроса верни его id без изменений, текст запроса тоже не меняй.")
    else:
        lines.append("Возвращай текст запроса точно в том виде, в каком он дан.")
    lines += [
        "",
        "Верни JSON:",
        QUERY_RESPONSE_SCHEMA_WITH_ID if include_ids else QUERY_RESPONSE_SCHEMA,
    ]
    return "\n".join(lines)


def build_word_filter_prompt(
    words: Sequence[WordStatistic],
    business_description: str,
    safe_words: Sequence[str],
    *,
    safe_words_limit: int = 50,
) -> str:
    word_data = [
        {
            "word": word.word,
            "cost": _round_half_up(word.total_cost),
            "clicks": word.total_clicks,
            "queries": word.queries_count,
            "examples": list(word.example_queries[:2]),
        }
        for word in words
    ]
    safe_list = ", ".join(safe_words[:safe_words_limit]) or "(нет данных)"
    return "\n".join(
        [
            "=== БИЗНЕС ===",
            business_description,
            "",
            "=== ЗАДАЧА ===",
            "Найди только явно мусорные слова, которые никогда не приведут к покупке услуг этого бизнеса.",
            "",
            "=== СЛОВА ИЗ КОНВЕРТИРУЮЩИХ ЗАПРОСОВ (ЦЕЛЕВЫЕ, МИНУСОВАТЬ НЕЛЬЗЯ) ===",
            safe_list,
            "",
            UNIVERSAL_TARGET_WORDS,
            "",
            _WORD_TAXONOMY,
            "",
            _OPERATOR_GUIDE,
            "",
            "=== СЛОВА ДЛЯ АНАЛИЗА ===",
            _dump(word_data),
            "",
            _WORD_SAFETY_RULES,
            "",
            "Верни JSON:",
            WORD_RESPONSE_SCHEMA,
        ]
    )


def build_review_prompt(
    records: Sequence[QueryMetricRecord],
    business_description: str,
    safe_words: Sequence[str],
    *,
    safe_words_limit: int = 50,
) -> str:
    """Prompt that settles review queries into target or trash, leaning target."""

    query_data = [
        {"query": record.query, "cost": _round_half_up(record.cost), "clicks": record.clicks}
        for record in records
    ]
    safe_list = ", ".join(safe_words[:safe_words_limit]) or "(нет данных)"
    return "\n".join(
        [
            "=== БИЗНЕС ===",
            business_description,
            "",
            "=== ЗАДАЧА ===",
            "Классифицируй каждый запрос: приведёт ли он к покупке услуг этого бизнеса.",
            "",
            "=== СЛОВА ИЗ КОНВЕРТИРУЮЩИХ ЗАПРОСОВ ===",
            safe_list,
            "",
            "TARGET (по умолчанию): вопросы о процессе, цене или месте получения услуги,",
            "любой запрос с коммерческим интентом для этого бизнеса.",
            "TRASH (только явный): информационный без намерения купить, бесплатное и «своими руками»,",
            "другая ниша.",
            "",
            "=== ЗАПРОСЫ ===",
            _dump(query_data),
            "",
            "Верни JSON:",
            REVIEW_RESPONSE_SCHEMA,
            "",
            "ПРАВИЛО: при любых сомнениях ставь TARGET.",
        ]
    )


__all__ = [
    "CTR_SUSPICION_RULE",
    "UNIVERSAL_TARGET_WORDS",
    "build_query_analysis_prompt",
    "build_review_prompt",
    "build_word_filter_prompt",
    "serialize_query_records",
]
