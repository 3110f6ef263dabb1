from app.workshop import create_app

app = create_app()
