from costledger import create_app

app = create_app()
