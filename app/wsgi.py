from app.dealership import create_app

app = create_app()
