# ============================================================
# UNIT-ТЕСТЫ ДЛЯ SIMHASH
# ============================================================
# Тестируем:
# - Нормализацию текста в токены
# - Устойчивость хеша к регистру, пунктуации и порядку слов
# - Расстояние Хэмминга и поиск почти-дубликатов
# - Хранение хеша в знаковой колонке BIGINT
# ============================================================

from modguard.services.detection.simhash import (
    HASH_MASK,
    compute_hash,
    hamming_distance,
    is_near_duplicate,
    to_signed,
    to_unsigned,
    tokenize,
)


SPAM_TEXT = "Быстрый заработок без вложений! Пиши в личку, расскажу как получать 5000 в день"


class TestTokenize:
    """Тесты разбиения текста на токены"""

    def test_lowercases_and_splits_on_punctuation(self):
        """Пунктуация и подчёркивание - разделители, регистр не важен"""
        assert tokenize("Hi, a WORLD_x!") == ["hi", "world"]

    def test_empty_and_none(self):
        assert tokenize("") == []
        assert tokenize(None) == []

    def test_cyrillic_tokens(self):
        assert tokenize("Пиши В ЛИЧКУ!!!") == ["пиши", "личку"]


class TestComputeHash:
    """Тесты вычисления SimHash"""

    def test_empty_text_gives_zero(self):
        """Пустой текст и текст без значимых токенов дают 0"""
        assert compute_hash("") == 0
        assert compute_hash(None) == 0
        assert compute_hash("a ! ? b") == 0

    def test_hash_fits_64_bits(self):
        value = compute_hash(SPAM_TEXT)
        assert 0 <= value <= HASH_MASK

    def test_stable_between_calls(self):
        assert compute_hash(SPAM_TEXT) == compute_hash(SPAM_TEXT)

    def test_case_and_punctuation_do_not_matter(self):
        """Отличие только в регистре и пунктуации - тот же хеш"""
        variant = "быстрый ЗАРАБОТОК, без вложений... пиши в личку - расскажу как получать 5000 в день!!!"
        assert compute_hash(variant) == compute_hash(SPAM_TEXT)

    def test_word_order_does_not_matter(self):
        assert compute_hash("купи крипту сейчас") == compute_hash("сейчас крипту купи")

    def test_different_texts_differ(self):
        other = "Коллеги, напоминаю что завтра созвон по релизу в 11:00, повестка в трекере"
        assert compute_hash(other) != compute_hash(SPAM_TEXT)


class TestNearDuplicate:
    """Тесты расстояния Хэмминга и поиска дубликатов"""

    def test_hamming_distance_all_bits(self):
        """Знаковое -1 из БД - это все 64 бита"""
        assert hamming_distance(0, -1) == 64
        assert hamming_distance(0b1011, 0b0001) == 2
        assert hamming_distance(12345, 12345) == 0

    def test_punctuation_variant_is_duplicate(self):
        variant = "БЫСТРЫЙ заработок без вложений!!! пиши в личку. расскажу как получать 5000 в день"
        assert is_near_duplicate(compute_hash(variant), [compute_hash(SPAM_TEXT)], max_distance=3)

    def test_unrelated_text_is_not_duplicate(self):
        other = "Коллеги, напоминаю что завтра созвон по релизу в 11:00, повестка в трекере"
        assert not is_near_duplicate(compute_hash(other), [compute_hash(SPAM_TEXT)], max_distance=3)

    def test_max_distance_is_inclusive(self):
        assert is_near_duplicate(0b1111, [0], max_distance=4)
        assert not is_near_duplicate(0b1111, [0], max_distance=3)

    def test_empty_existing_and_none_values(self):
        assert not is_near_duplicate(compute_hash(SPAM_TEXT), [], max_distance=3)
        assert not is_near_duplicate(5, [None], max_distance=3)


class TestSignedStorage:
    """Тесты перевода хеша в знаковое представление для BIGINT"""

    def test_high_bit_becomes_negative(self):
        assert to_signed(1 << 63) == -(1 << 63)
        assert to_signed(HASH_MASK) == -1

    def test_small_values_unchanged(self):
        assert to_signed(5) == 5
        assert to_unsigned(5) == 5

    def test_unsigned_restores_value(self):
        value = compute_hash(SPAM_TEXT)
        assert to_unsigned(to_signed(value)) == value
        assert to_unsigned(-1) == HASH_MASK

    def test_signed_value_compares_with_unsigned(self):
        """Хеш из БД (знаковый) сравнивается с новым (беззнаковым) без перевода"""
        value = compute_hash(SPAM_TEXT)
        assert hamming_distance(to_signed(value), value) == 0
