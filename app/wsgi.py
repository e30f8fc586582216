from app.agencyops import create_app

app = create_app()
