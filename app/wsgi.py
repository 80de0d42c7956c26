from app.palette import create_app

app = create_app()
