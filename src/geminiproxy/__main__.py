from geminiproxy.cli.main import run

run()
