from app.murrs import create_app

app = create_app()
