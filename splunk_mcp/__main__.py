from splunk_mcp.mcp_server.stdio_server import main

if __name__ == "__main__":
    main()
