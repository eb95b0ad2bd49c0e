#!/usr/bin/env python3
"""
Админ-команда для обновления эмбеддингов записей дневника
"""
import asyncio
import argparse
import sys
from datetime import datetime
from diaria.errors import DeadlineExceeded, DiariaError
from diaria.rag.diary_rag_manager import DiaryRAGManager
from utils.logger import app_logger


def print_build_result(result: dict):
    print(f"   • Обработано: {result.get('processed', 0)}")
    print(f"   • Ошибок: {result.get('failed', 0)}")
    print(f"   • Пропущено пустых: {result.get('skipped', 0)}")
    if 'unchanged' in result:
        print(f"   • Без изменений: {result['unchanged']}")
        print(f"   • Удалено устаревших: {result['removed']}")


async def full_update(manager: DiaryRAGManager, owner: str):
    """Полное обновление всех эмбеддингов владельца"""
    print(f"🔄 Начинаем полное обновление эмбеддингов владельца {owner}...")

    result = await manager.build_vectors(owner, incremental=False)

    print("✅ Полное обновление завершено:")
    print_build_result(result.to_dict())
    return result.failed == 0


async def incremental_update(manager: DiaryRAGManager, owner: str):
    """Инкрементальное обновление только новых и измененных записей"""
    print(f"🔄 Начинаем инкрементальное обновление владельца {owner}...")

    result = await manager.build_vectors(owner, incremental=True)

    if result.processed == 0 and result.failed == 0 and result.removed == 0:
        print("✅ Новых или измененных записей не найдено, обновление не требуется")
        return True

    print("✅ Инкрементальное обновление завершено:")
    print_build_result(result.to_dict())
    return result.failed == 0


async def run_search(manager: DiaryRAGManager, owner: str, query: str):
    """Проверяет семантический поиск по дневнику"""
    print(f"🔍 Тестируем семантический поиск: '{query}'")

    results = await manager.query_similar(owner, query, limit=5)

    if not results:
        print("❌ Результатов не найдено")
        return

    print(f"✅ Найдено {len(results)} результатов:")

    for i, result in enumerate(results, 1):
        print(f"  {i}. {result.date} (сходство: {result.score:.3f})")
        if result.mood or result.weather:
            print(f"     🙂 {result.mood or '-'} | ☁️ {result.weather or '-'}")
        content = result.content[:80]
        print(f"     📝 {content}{'...' if len(result.content) > 80 else ''}")
        print()


async def show_stats(manager: DiaryRAGManager, owner: str):
    """Показывает статистику индекса владельца"""
    print("📊 Статистика эмбеддингов:")

    stats = await manager.get_stats(owner)

    print(f"   • Всего записей: {stats.total}")
    print(f"   • Проиндексировано: {stats.indexed}")
    print(f"   • Без эмбеддинга: {stats.missing}")
    print(f"   • Устарело: {stats.outdated}")


async def main():
    """Основная функция"""
    parser = argparse.ArgumentParser(description="Управление эмбеддингами записей дневника")

    parser.add_argument("--owner", type=str, required=True,
                        help="ID владельца дневника")
    parser.add_argument("--full", action="store_true",
                        help="Полное обновление всех эмбеддингов")
    parser.add_argument("--incremental", action="store_true",
                        help="Обновление только новых и измененных записей")
    parser.add_argument("--test", type=str, metavar="QUERY",
                        help="Тестировать поиск с заданным запросом")
    parser.add_argument("--stats", action="store_true",
                        help="Показать статистику индекса")

    args = parser.parse_args()

    if not any([args.full, args.incremental, args.test, args.stats]):
        parser.print_help()
        return

    try:
        manager = DiaryRAGManager()

        print(f"🚀 Запуск обновления эмбеддингов: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print("=" * 60)

        if args.stats:
            await show_stats(manager, args.owner)

        if args.full:
            success = await full_update(manager, args.owner)
            if not success:
                sys.exit(1)

        if args.incremental:
            success = await incremental_update(manager, args.owner)
            if not success:
                sys.exit(1)

        if args.test:
            await run_search(manager, args.owner, args.test)

        print("=" * 60)
        print("🎉 Операция завершена успешно!")

    except KeyboardInterrupt:
        print("\n⏹️ Операция прервана пользователем")
        sys.exit(1)
    except DeadlineExceeded as e:
        print("⏱️ Построение не уложилось в таймаут, частичный результат:")
        print_build_result(e.partial.to_dict())
        sys.exit(1)
    except DiariaError as e:
        print(f"❌ Ошибка: {e}")
        app_logger.error(f"Ошибка обновления эмбеддингов владельца {args.owner}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
