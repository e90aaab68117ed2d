from emailgate.main import run

run()
