# modguard/services/detection/simhash.py
"""
SimHash - 64-битный хеш похожести текста.

Используется для дедупликации обучающей выборки: два сообщения,
отличающиеся только пунктуацией, регистром или порядком слов,
дают одинаковый (или очень близкий) хеш.

Алгоритм:
1. Текст приводится к нижнему регистру и режется по пробелам и пунктуации
2. Токены короче 2 символов отбрасываются
3. Каждый токен хешируется blake2b в 64 бита
4. Каждый бит голосует +1/-1 с весом, равным частоте токена
5. Бит итогового хеша = 1, если сумма голосов положительна
"""

# Импортируем hashlib для стабильного хеша токенов (hash() рандомизирован между запусками)
import hashlib
# Импортируем re для разбиения текста на токены
import re
# Импортируем Counter для подсчёта частоты токенов
from collections import Counter
# Импортируем типы для аннотаций
from typing import Iterable, List, Optional


# ════════════════════════════════════════════════════════════════════════════
# КОНСТАНТЫ
# ════════════════════════════════════════════════════════════════════════════

# Разрядность хеша
HASH_BITS = 64
# Маска для беззнакового 64-битного значения
HASH_MASK = (1 << HASH_BITS) - 1
# Минимальная длина токена
MIN_TOKEN_LENGTH = 2
# Разделители: всё, что не буква и не цифра (подчёркивание тоже разделитель)
_TOKEN_SPLIT_RE = re.compile(r"[\W_]+", re.UNICODE)


def tokenize(text: Optional[str]) -> List[str]:
    """
    Разбивает текст на нормализованные токены.

    Args:
        text: Исходный текст (может быть None)

    Returns:
        Список токенов в нижнем регистре длиной от 2 символов
    """
    if not text:
        return []
    return [
        token
        for token in _TOKEN_SPLIT_RE.split(text.lower())
        if len(token) >= MIN_TOKEN_LENGTH
    ]


def _token_hash(token: str) -> int:
    # 8 байт blake2b = 64 бита, стабильно между процессами
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def compute_hash(text: Optional[str]) -> int:
    """
    Вычисляет 64-битный SimHash текста.

    Args:
        text: Исходный текст

    Returns:
        Беззнаковое 64-битное число; 0 для пустого текста
    """
    tokens = tokenize(text)
    if not tokens:
        return 0

    # Вектор голосов по каждому биту
    vector = [0] * HASH_BITS
    for token, weight in Counter(tokens).items():
        token_hash = _token_hash(token)
        for bit in range(HASH_BITS):
            if token_hash & (1 << bit):
                vector[bit] += weight
            else:
                vector[bit] -= weight

    fingerprint = 0
    for bit, score in enumerate(vector):
        if score > 0:
            fingerprint |= 1 << bit
    return fingerprint


def hamming_distance(first: int, second: int) -> int:
    """Количество различающихся бит (знаковые значения из БД тоже подходят)"""
    return bin((first ^ second) & HASH_MASK).count("1")


def is_near_duplicate(new_hash: int, existing: Iterable[int], max_distance: int) -> bool:
    """
    Есть ли среди существующих хешей достаточно близкий.

    Args:
        new_hash: Хеш нового образца
        existing: Хеши уже сохранённых образцов
        max_distance: Максимальное расстояние Хэмминга (включительно)

    Returns:
        True если найден хеш на расстоянии <= max_distance
    """
    return any(
        hamming_distance(new_hash, other) <= max_distance
        for other in existing
        if other is not None
    )


# ════════════════════════════════════════════════════════════════════════════
# ХРАНЕНИЕ В БД
# ════════════════════════════════════════════════════════════════════════════
# В PostgreSQL BIGINT знаковый, поэтому хеш хранится в дополнительном коде

def to_signed(value: int) -> int:
    """Беззнаковое 64-битное значение -> знаковое для колонки BIGINT"""
    value &= HASH_MASK
    return value - (1 << HASH_BITS) if value >= (1 << (HASH_BITS - 1)) else value


def to_unsigned(value: int) -> int:
    """Знаковое значение из БД -> беззнаковое 64-битное"""
    return value & HASH_MASK
