"""
Точка входа для запуска бота обменов.
Запуск: python -m guildvault
"""

import sys

from guildvault.main import main


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n🛑 Бот остановлен пользователем")
    except Exception as e:
        print(f"❌ Критическая ошибка: {e}")
        sys.exit(1)
