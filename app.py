# app.py
"""
Entrypoint da aplicação.

Uso:
  python app.py migrate --db entregas.db
  python app.py proporcoes set brigadeiro=60 beijinho=40
  python app.py entrada brigadeiro 100
  python app.py pedidos add AG-1 --cliente "Padaria Sol" --quantidade 50
  python app.py confirmar AG-1
  python app.py rel necessidade
"""

from entregas.adapters.cli import main

if __name__ == "__main__":
    main()
