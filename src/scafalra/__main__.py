from scafalra.cli import main

main()
