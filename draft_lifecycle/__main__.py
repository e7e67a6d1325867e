import uvicorn


def main() -> None:
    """Запуск API: python -m draft_lifecycle"""
    uvicorn.run("draft_lifecycle.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
