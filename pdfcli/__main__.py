from pdfcli.cli import main

main()
