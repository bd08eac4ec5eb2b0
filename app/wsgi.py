from app.fyndr import create_app

app = create_app()
