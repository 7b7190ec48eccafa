from app.store import create_app

app = create_app()
