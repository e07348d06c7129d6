from app.ssm import create_app

app = create_app()
