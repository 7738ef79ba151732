#!/usr/bin/env python3
"""
Главный файл для запуска бота через кнопку Play в IDE.
После pip install -e . то же самое делает команда modguard
"""

import sys
import traceback

from modguard.bot import run

if __name__ == "__main__":
    try:
        run()
    except Exception as e:
        print(f"❌ Ошибка запуска бота: {e}")
        traceback.print_exc()
        sys.exit(1)
