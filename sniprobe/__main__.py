from sniprobe.main import run

run()
