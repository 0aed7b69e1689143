from app.blog import create_app

app = create_app()
